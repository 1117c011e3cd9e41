from concurrent.futures import ThreadPoolExecutor

import pytest

from blazedocs.core import Document, StringField
from blazedocs.errors import (
    ConfigurationError,
    StoreNotInitializedError,
    TransportConfigurationError,
    UnknownIndexError,
)
from blazedocs.persistence import DocumentStore, StoreConventions
from blazedocs.query import IndexDefinition
from blazedocs.transport import ConnectionConfig, HttpTransport, SQLiteTransport


class Ticket(Document):
    title = StringField(nullable=False)


class RecordingTransport(SQLiteTransport):
    def __init__(self):
        super().__init__()
        self.deployed = []
        self.connected = 0

    def connect(self, config):
        self.connected += 1
        return super().connect(config)

    def put_indexes(self, definitions):
        self.deployed.append([definition.name for definition in definitions])
        return super().put_indexes(definitions)


TICKETS_BY_TITLE = IndexDefinition(name="Tickets/ByTitle", sources=(Ticket,), fields=("title",))


def test_open_session_requires_initialize():
    store = DocumentStore("sqlite:///:memory:")
    with pytest.raises(StoreNotInitializedError):
        store.open_session()
    with pytest.raises(StoreNotInitializedError):
        store.key_generator


def test_initialize_connects_once_and_deploys_registered_indexes():
    transport = RecordingTransport()
    store = DocumentStore(transport=transport)
    store.register_index(TICKETS_BY_TITLE)

    assert store.initialize() is store
    assert store.initialize() is store
    assert transport.connected == 1
    assert transport.deployed == [["Tickets/ByTitle"]]

    late = IndexDefinition(name="Tickets/All", sources=(Ticket,), fields=("title",))
    store.register_index(late)
    assert transport.deployed[-1] == ["Tickets/All"]
    assert [index.name for index in store.indexes] == ["Tickets/ByTitle", "Tickets/All"]
    store.close()


def test_unknown_index_fails_before_any_request():
    store = DocumentStore().initialize()
    with store.open_session() as session:
        with pytest.raises(UnknownIndexError):
            session.query(Ticket, index="Tickets/Missing")
        assert session.number_of_requests == 0


def test_store_picks_transport_from_url_scheme():
    assert isinstance(DocumentStore("sqlite:///:memory:").transport, SQLiteTransport)
    assert isinstance(DocumentStore("http://localhost:8080/Northwind").transport, HttpTransport)
    with pytest.raises(TransportConfigurationError):
        DocumentStore("redis://localhost:6379/0")


def test_url_and_config_are_mutually_exclusive():
    with pytest.raises(ConfigurationError):
        DocumentStore("sqlite:///:memory:", config=ConnectionConfig.from_dsn("sqlite:///:memory:"))


def test_store_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("BLAZEDOCS_URL", f"sqlite:///{tmp_path / 'env.db'}")
    store = DocumentStore.from_env()
    assert store.config.source == "BLAZEDOCS_URL"
    with store:
        assert store.initialized
        with store.open_session() as session:
            session.store(Ticket(title="from env"))
            session.commit()
    assert not store.initialized


def test_conventions_from_env(monkeypatch):
    monkeypatch.setenv("BLAZEDOCS_MAX_REQUESTS_PER_SESSION", "50")
    monkeypatch.setenv("BLAZEDOCS_USE_OPTIMISTIC_CONCURRENCY", "true")
    conventions = StoreConventions.from_env(key_range_capacity=8)

    assert conventions.max_requests_per_session == 50
    assert conventions.use_optimistic_concurrency is True
    assert conventions.key_range_capacity == 8


def test_conventions_reject_invalid_values(monkeypatch):
    with pytest.raises(ConfigurationError):
        StoreConventions(max_requests_per_session=0)
    monkeypatch.setenv("BLAZEDOCS_KEY_RANGE_CAPACITY", "many")
    with pytest.raises(ConfigurationError):
        StoreConventions.from_env()


def test_sessions_opened_concurrently_get_unique_keys(tmp_path):
    store = DocumentStore(
        f"sqlite:///{tmp_path / 'threads.db'}",
        conventions=StoreConventions(key_range_capacity=3),
    ).initialize()

    def worker(index):
        with store.open_session() as session:
            keys = [session.store(Ticket(title=f"t{index}-{n}")) for n in range(5)]
            session.commit()
            return keys

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(worker, range(16)))

    keys = [key for batch in results for key in batch]
    assert len(keys) == len(set(keys)) == 80

    with store.open_session() as session:
        loaded = session.load_many(keys, Ticket)
        assert all(ticket is not None for ticket in loaded.values())
    store.close()


def test_generated_keys_continue_after_existing_keys_with_custom_separator():
    store = DocumentStore(conventions=StoreConventions(identity_separator="-")).initialize()
    with store.open_session() as session:
        session.store(Ticket(id="tickets-1", title="imported"))
        session.commit()

    with store.open_session() as session:
        key = session.store(Ticket(title="fresh"))
        session.commit()

    assert key == "tickets-2"
    with store.open_session() as session:
        assert session.load("tickets-1", Ticket).title == "imported"
    store.close()
