import pytest

from blazedocs.core import Document, Include, StringField
from blazedocs.errors import ConcurrencyError, TransportConfigurationError, TransportConnectionError
from blazedocs.query import IndexDefinition, Q
from blazedocs.transport import (
    DELETE,
    PUT,
    BatchOperation,
    ConnectionConfig,
    DocumentRecord,
    IndexQuery,
    SQLiteTransport,
)


class Crate(Document):
    label = StringField(nullable=True)
    shelf = StringField(nullable=True)


class FragileCrate(Crate):
    note = StringField(nullable=True)


def put(key, body, *, collection="crates", type_tag="Crate", expected=None):
    record = DocumentRecord(key=key, collection=collection, type_tag=type_tag, body=body)
    return BatchOperation(key, PUT, record, expected_etag=expected)


@pytest.fixture
def transport():
    instance = SQLiteTransport()
    instance.connect(ConnectionConfig.from_dsn("sqlite:///:memory:"))
    yield instance
    instance.close()


def test_apply_batch_then_fetch(transport):
    result = transport.apply_batch([put("crates/1", {"label": "a"}), put("crates/2", {"label": "b"})])

    assert set(result.versions) == {"crates/1", "crates/2"}
    record = transport.fetch_one("Crates/1")
    assert record.key == "crates/1"
    assert record.body == {"label": "a"}
    assert record.type_tag == "Crate"
    assert record.etag == result.versions["crates/1"]
    assert transport.fetch_one("crates/404") is None


def test_fetch_many_returns_every_requested_key_and_includes(transport):
    transport.apply_batch(
        [
            put("shelves/1", {"label": "top"}, collection="shelves", type_tag="Shelf"),
            put("crates/1", {"label": "a", "shelf": "shelves/1"}),
            put("crates/2", {"label": "b", "shelf": "shelves/404"}),
        ]
    )

    result = transport.fetch_many(["crates/1", "crates/2", "crates/3"], [Include("shelf")])

    assert list(result.documents) == ["crates/1", "crates/2", "crates/3"]
    assert result.documents["crates/3"] is None
    assert result.includes["shelves/1"].body == {"label": "top"}
    assert result.includes["shelves/404"] is None


def test_batch_is_atomic_on_concurrency_failure(transport):
    first = transport.apply_batch([put("crates/1", {"label": "a"})]).versions["crates/1"]
    transport.apply_batch([put("crates/1", {"label": "b"}, expected=first)])

    with pytest.raises(ConcurrencyError) as excinfo:
        transport.apply_batch(
            [
                put("crates/2", {"label": "new"}),
                put("crates/1", {"label": "stale"}, expected=first),
            ]
        )

    assert excinfo.value.expected == first
    assert transport.fetch_one("crates/2") is None
    assert transport.fetch_one("crates/1").body == {"label": "b"}


def test_new_document_etag_requires_absent_key(transport):
    transport.apply_batch([put("crates/1", {"label": "a"}, expected="")])
    with pytest.raises(ConcurrencyError):
        transport.apply_batch([put("crates/1", {"label": "b"}, expected="")])


def test_delete_removes_document(transport):
    transport.apply_batch([put("crates/1", {"label": "a"})])
    result = transport.apply_batch([BatchOperation("crates/1", DELETE)])

    assert result.versions == {"crates/1": None}
    assert transport.fetch_one("crates/1") is None


def test_reserve_key_range_continues_after_existing_keys(transport):
    transport.apply_batch([put("crates/7", {"label": "a"})])

    first = transport.reserve_key_range("crates", 5)
    second = transport.reserve_key_range("crates", 5)

    assert (first.low, first.high) == (8, 12)
    assert (second.low, second.high) == (13, 17)
    with pytest.raises(TransportConfigurationError):
        transport.reserve_key_range("crates", 0)


def test_reserve_key_range_seeds_from_keys_using_the_separator(transport):
    transport.apply_batch([put("crates-9", {"label": "a"}), put("crates/20", {"label": "b"})])

    key_range = transport.reserve_key_range("crates", 5, "-")

    assert (key_range.low, key_range.high) == (10, 14)


def test_index_query_covers_base_and_derived_documents(transport):
    index = IndexDefinition(
        name="Crates/ByLabel",
        sources=(Crate, FragileCrate),
        fields=("label",),
        computed={"label_length": lambda body: len(body.get("label") or "")},
    )
    transport.apply_batch([put("crates/1", {"label": "bb"})])
    transport.put_indexes([index])
    transport.apply_batch(
        [
            put("crates/2", {"label": "a", "note": "glass"}, type_tag="FragileCrate"),
            put("crates/3", {"label": "ccc"}),
        ]
    )

    result = transport.query(IndexQuery(index_name="Crates/ByLabel", order_by=("label",)))
    assert [record.key for record in result.documents] == ["crates/2", "crates/1", "crates/3"]

    filtered = transport.query(
        IndexQuery(index_name="Crates/ByLabel", where=Q(label_length__gte=2), order_by=("-label",), limit=1)
    )
    assert [record.key for record in filtered.documents] == ["crates/3"]


def test_collection_query_filters_type_tags(transport):
    transport.apply_batch(
        [
            put("crates/1", {"label": "a"}),
            put("crates/2", {"label": "b"}, type_tag="FragileCrate"),
        ]
    )

    everything = transport.query(IndexQuery(collection="crates"))
    fragile = transport.query(IndexQuery(collection="crates", type_tags=("FragileCrate",)))
    by_id = transport.query(IndexQuery(collection="crates", where=Q(id="crates/1")))

    assert [record.key for record in everything.documents] == ["crates/1", "crates/2"]
    assert [record.key for record in fragile.documents] == ["crates/2"]
    assert [record.key for record in by_id.documents] == ["crates/1"]


def test_query_against_undeployed_index_fails(transport):
    with pytest.raises(TransportConfigurationError):
        transport.query(IndexQuery(index_name="Nope"))


def test_documents_survive_reconnect(tmp_path):
    config = ConnectionConfig.from_dsn(f"sqlite:///{tmp_path / 'docs.db'}")
    transport = SQLiteTransport()
    transport.connect(config)
    transport.apply_batch([put("crates/1", {"label": "kept"})])
    transport.close()

    with pytest.raises(TransportConnectionError):
        transport.fetch_one("crates/1")

    transport.connect(config)
    assert transport.fetch_one("crates/1").body == {"label": "kept"}
    transport.close()
