import pytest

from blazedocs.core import Document, IntegerField, StringField
from blazedocs.hooks import HookDispatcher, hooks
from blazedocs.persistence import DocumentStore


@pytest.fixture(autouse=True)
def clear_hooks():
    hooks.clear()
    yield
    hooks.clear()


class Sample(Document):
    name = StringField(nullable=False)
    age = IntegerField(default=0)


class SpecialSample(Sample):
    pass


def test_session_fires_hooks_in_order():
    events = []

    for event_name in ["before_store", "before_delete", "before_query", "after_commit"]:

        def handler(instance, event=event_name, **ctx):
            events.append((event, instance.name if instance else None))

        hooks.register(event_name, handler)

    store = DocumentStore().initialize()
    with store.open_session() as session:
        session.store(Sample(id="samples/1", name="Alice", age=21))
        session.store(Sample(id="samples/2", name="Bob"))
        session.commit()
        session.delete("samples/2")
        session.commit()
        session.query(Sample).to_list()

    assert events == [
        ("before_store", "Alice"),
        ("before_store", "Bob"),
        ("after_commit", None),
        ("before_delete", "Bob"),
        ("after_commit", None),
        ("before_query", None),
    ]
    store.close()


def test_class_hooks_fire_for_subclasses_only():
    dispatcher = HookDispatcher()
    seen = []
    dispatcher.register("before_store", lambda instance, **ctx: seen.append(type(instance).__name__), document=Sample)

    dispatcher.fire("before_store", SpecialSample(name="x"))
    dispatcher.fire("before_store", None)

    assert seen == ["SpecialSample"]


def test_before_delete_receives_the_key():
    keys = []
    hooks.register("before_delete", lambda instance, **ctx: keys.append((instance, ctx["key"])))

    store = DocumentStore().initialize()
    with store.open_session() as session:
        session.delete("samples/404")

    assert keys == [(None, "samples/404")]
    store.close()


def test_unknown_event_rejected():
    with pytest.raises(ValueError):
        hooks.register("after_save", lambda instance, **ctx: None)
