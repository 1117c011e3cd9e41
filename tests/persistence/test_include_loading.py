import pytest

from blazedocs.core import (
    Document,
    EmbeddedDocument,
    Include,
    IntegerField,
    ListField,
    ReferenceField,
    StringField,
)
from blazedocs.errors import ConfigurationError
from blazedocs.persistence import DocumentStore
from blazedocs.query import Q
from blazedocs.transport import SQLiteTransport


class Vendor(Document):
    name = StringField(nullable=False)


class Inspector(Document):
    name = StringField(nullable=False)


class Part(Document):
    name = StringField(nullable=False)


class AssemblyLine(EmbeddedDocument):
    part = ReferenceField(Part, nullable=False)
    quantity = IntegerField(default=1)


class Assembly(Document):
    label = StringField(nullable=True)
    vendor = ReferenceField(Vendor, nullable=True)
    inspector = ReferenceField(Inspector, nullable=True)
    lines = ListField(AssemblyLine)


class CountingTransport(SQLiteTransport):
    def __init__(self):
        super().__init__()
        self.calls = []

    def fetch_one(self, key):
        self.calls.append("fetch_one")
        return super().fetch_one(key)

    def fetch_many(self, keys, includes=()):
        self.calls.append("fetch_many")
        return super().fetch_many(keys, includes)

    def query(self, query):
        self.calls.append("query")
        return super().query(query)


@pytest.fixture
def store():
    transport = CountingTransport()
    document_store = DocumentStore(transport=transport).initialize()
    with document_store.open_session() as session:
        for document in [
            Vendor(id="vendors/1", name="Exotic Liquids"),
            Vendor(id="vendors/2", name="Tokyo Traders"),
            Inspector(id="inspectors/1", name="Nancy"),
            Part(id="parts/1", name="Chai"),
            Part(id="parts/2", name="Chang"),
            Part(id="parts/3", name="Syrup"),
            Assembly(
                id="assemblies/1",
                label="first",
                vendor="vendors/1",
                inspector="inspectors/1",
                lines=[
                    AssemblyLine(part="parts/1", quantity=2),
                    AssemblyLine(part="parts/2"),
                    AssemblyLine(part="parts/3", quantity=5),
                ],
            ),
            Assembly(
                id="assemblies/2",
                label="second",
                vendor="vendors/2",
                lines=[AssemblyLine(part="parts/1"), AssemblyLine(part="parts/404")],
            ),
        ]:
            session.store(document)
        session.commit()
    transport.calls.clear()
    yield document_store
    document_store.close()


def calls(store):
    return store.transport.calls


def test_chained_includes_prefetch_everything_in_one_request(store):
    with store.open_session() as session:
        assembly = (
            session.include("vendor")
            .include("inspector")
            .include("lines.part")
            .load("assemblies/1", Assembly)
        )

        vendor = session.load(assembly.vendor, Vendor)
        inspector = session.load(assembly.inspector, Inspector)
        parts = session.load_many([line.part for line in assembly.lines], Part)
        for line in assembly.lines:
            assert session.load(line.part, Part) is parts[line.part]

        assert vendor.name == "Exotic Liquids"
        assert inspector.name == "Nancy"
        assert [part.name for part in parts.values()] == ["Chai", "Chang", "Syrup"]
        assert calls(store) == ["fetch_many"]
        assert session.number_of_requests == 1


def test_include_keyword_accepts_descriptors_and_list_syntax(store):
    with store.open_session() as session:
        assembly = session.load(
            "assemblies/1", Assembly, includes=[Include("vendor"), "lines[].part"]
        )
        assert session.load(assembly.vendor).name == "Exotic Liquids"
        assert session.load("parts/3").name == "Syrup"
        assert calls(store) == ["fetch_many"]


def test_missing_included_document_is_remembered(store):
    with store.open_session() as session:
        session.load("assemblies/2", Assembly, includes=["lines.part"])
        assert session.load("parts/404") is None
        assert session.load("parts/1").name == "Chai"
        assert calls(store) == ["fetch_many"]


def test_load_many_with_includes_covers_every_primary(store):
    with store.open_session() as session:
        loaded = session.load_many(
            ["assemblies/1", "assemblies/2"], Assembly, includes=["vendor"]
        )
        vendors = session.load_many([assembly.vendor for assembly in loaded.values()])
        assert [vendor.name for vendor in vendors.values()] == ["Exotic Liquids", "Tokyo Traders"]
        assert calls(store) == ["fetch_many"]


def test_cached_primary_refetches_only_when_related_documents_are_unknown(store):
    with store.open_session() as session:
        assembly = session.load("assemblies/1", Assembly)
        assert calls(store) == ["fetch_one"]

        again = session.include("vendor").load("assemblies/1", Assembly)
        assert again is assembly
        assert calls(store) == ["fetch_one", "fetch_many"]

        session.include("vendor").load("assemblies/1", Assembly)
        session.load("vendors/1")
        assert calls(store) == ["fetch_one", "fetch_many"]


def test_invalid_include_path_fails_before_any_request(store):
    with store.open_session() as session:
        with pytest.raises(ConfigurationError):
            session.load("assemblies/1", Assembly, includes=["label"])
        with pytest.raises(ConfigurationError):
            session.include("lines.quantity").load("assemblies/1", Assembly)
        with pytest.raises(ConfigurationError):
            session.load("assemblies/1", Assembly, includes=["lines.part.name"])
        assert calls(store) == []


def test_query_routes_included_documents_into_session(store):
    with store.open_session() as session:
        results = session.query(Assembly).where(Q(label="first")).include("vendor").to_list()

        assert [assembly.id for assembly in results] == ["assemblies/1"]
        assert session.load("vendors/1", Vendor).name == "Exotic Liquids"
        assert session.load("assemblies/1") is results[0]
        assert calls(store) == ["query"]
