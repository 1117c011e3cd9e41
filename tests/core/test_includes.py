import pytest

from blazedocs.core import Document, EmbeddedDocument, Include, ListField, ReferenceField, StringField
from blazedocs.core.includes import collect_keys, normalize_includes
from blazedocs.errors import ConfigurationError


class Author(Document):
    name = StringField()


class Chapter(EmbeddedDocument):
    title = StringField()
    reviewer = ReferenceField(Author, nullable=True)
    sources = ListField(ReferenceField("Author"))


class Book(Document):
    title = StringField()
    author = ReferenceField(Author, nullable=True)
    editors = ListField(ReferenceField(Author))
    chapters = ListField(Chapter)


def test_parse_accepts_dotted_and_list_syntax():
    assert Include.parse("author") == Include("author")
    assert Include.parse("chapters.reviewer") == Include("chapters", "reviewer")
    assert Include.parse("chapters[].reviewer") == Include("chapters", "reviewer")
    assert Include("chapters", "reviewer").path == "chapters[].reviewer"

    for path in ["", "chapters.", "chapters.reviewer.name", ".author"]:
        with pytest.raises(ConfigurationError):
            Include.parse(path)


def test_keys_are_collected_in_order_without_duplicates():
    bodies = [
        {
            "author": "authors/1",
            "editors": ["authors/2", "authors/1"],
            "chapters": [
                {"reviewer": "authors/3", "sources": ["authors/4"]},
                {"reviewer": None, "sources": ["authors/4", "authors/5"]},
            ],
        },
        {"author": "authors/2", "chapters": None},
    ]
    includes = normalize_includes(["author", "editors", "chapters.reviewer", "chapters.sources", "author"])

    assert len(includes) == 4
    assert collect_keys(bodies, includes) == [
        "authors/1",
        "authors/2",
        "authors/3",
        "authors/4",
        "authors/5",
    ]


def test_validate_for_checks_key_valued_paths():
    for path in ["author", "editors", "chapters.reviewer", "chapters.sources"]:
        Include.parse(path).validate_for(Book)

    for path in ["publisher", "title", "chapters", "chapters.title", "author.name"]:
        with pytest.raises(ConfigurationError):
            Include.parse(path).validate_for(Book)
