import pytest

from blazedocs.errors import InvalidPredicateError
from blazedocs.query import Q


def test_lookups_match_entries():
    entry = {"name": "Chai", "price": 18.0, "tags": ["tea", "drink"], "discontinued": None}

    assert Q(name="Chai").matches(entry)
    assert Q(name__iexact="chai").matches(entry)
    assert Q(name__startswith="Ch", price__gte=18).matches(entry)
    assert Q(name__icontains="HA").matches(entry)
    assert Q(tags__contains="tea").matches(entry)
    assert Q(price__in=[18.0, 19.0]).matches(entry)
    assert not Q(price__lt=10).matches(entry)


def test_ordering_lookups_ignore_missing_and_mismatched_values():
    assert not Q(price__gt=5).matches({"price": None})
    assert not Q(price__gt=5).matches({})
    assert not Q(price__gt=5).matches({"price": "expensive"})


def test_combination_and_negation():
    expression = Q(name="Chai") | Q(name="Chang")
    assert expression.matches({"name": "Chang"})
    assert not expression.matches({"name": "Syrup"})
    assert (~expression).matches({"name": "Syrup"})
    assert not (Q(name="Chai") & Q(price=1)).matches({"name": "Chai", "price": 2})


def test_field_names_are_collected_from_nested_expressions():
    expression = (Q(name="Chai") | Q(price__gt=1)) & ~Q(tags__contains="tea")
    assert list(expression.field_names()) == ["name", "price", "tags"]


def test_invalid_predicates_are_rejected_eagerly():
    with pytest.raises(InvalidPredicateError):
        Q(name__regex="^C")
    with pytest.raises(InvalidPredicateError):
        Q(__exact=1)
    with pytest.raises(InvalidPredicateError):
        Q(name__in="Chai")
    with pytest.raises(InvalidPredicateError):
        Q("name")
    with pytest.raises(InvalidPredicateError):
        Q(name="Chai") | {"name": "Chang"}


def test_empty_expression_matches_everything():
    assert Q().is_empty()
    assert Q().matches({"anything": 1})
