import pytest

from blazedocs.core import Include
from blazedocs.errors import InvalidPredicateError
from blazedocs.query import Q, RQLCompiler
from blazedocs.transport import IndexQuery


def compile_query(**kwargs):
    return RQLCompiler(IndexQuery(**kwargs)).compile()


def test_index_query_with_ordering_paging_and_includes():
    rql, params = compile_query(
        index_name="Pets/ByName",
        where=Q(name__startswith="Re") | Q(age__gte=3),
        order_by=("-age", "name"),
        limit=10,
        offset=5,
        includes=(Include("owner"), Include("visits", "vet")),
    )

    assert rql == (
        "from index 'Pets/ByName' where (startsWith(name, $p0)) or (age >= $p1) "
        "order by age desc, name limit 10 offset 5 include owner, visits[].vet"
    )
    assert params == {"p0": "Re", "p1": 3}


def test_collection_query_restricts_type_tags():
    rql, params = compile_query(collection="pets", type_tags=("Dog",), where=Q(name="Rex"))

    assert rql == "from pets where @metadata.'Raven-Python-Type' in ($p0) and exact(name = $p1)"
    assert params == {"p0": ["Dog"], "p1": "Rex"}


def test_negation_membership_and_search():
    rql, params = compile_query(collection="pets", where=~Q(age__in=[1, 2]) & Q(name__contains="ex"))

    assert rql == "from pets where ((true and not (age in ($p0)))) and (search(name, $p1))"
    assert params == {"p0": [1, 2], "p1": "*ex*"}


def test_null_comparisons():
    rql, _ = compile_query(collection="pets", where=Q(owner=None))
    assert rql == "from pets where owner = null"

    with pytest.raises(InvalidPredicateError):
        compile_query(collection="pets", where=Q(age__gt=None))


def test_offset_without_limit_and_quoted_names():
    rql, _ = compile_query(collection="order-lines", order_by=("unit price",), offset=5)
    assert rql == "from 'order-lines' order by 'unit price' limit 2147483647 offset 5"

    rql, params = compile_query()
    assert rql == "from @all_docs"
    assert params == {}
