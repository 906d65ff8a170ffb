import pytest

from santadraw.services.errors import InvalidRuleError
from santadraw.services.exclusions import ExclusionGraph, canonical_pair


def test_self_exclusion_is_rejected():
    with pytest.raises(InvalidRuleError):
        ExclusionGraph.build([(1, 2), (3, 3)])


def test_pairs_are_deduplicated_ignoring_order():
    graph = ExclusionGraph.build([(2, 1), (1, 2), (1, 2)])
    assert graph.edges == frozenset({(1, 2)})
    assert len(graph) == 1


def test_exclusion_is_bidirectional():
    graph = ExclusionGraph.build([(4, 7)])
    assert graph.is_forbidden(4, 7)
    assert graph.is_forbidden(7, 4)
    assert (7, 4) in graph
    assert not graph.is_forbidden(4, 5)


def test_allowed_recipients_skip_self_and_excluded():
    graph = ExclusionGraph.build([(1, 2)])
    assert graph.allowed_recipients(1, [1, 2, 3, 4]) == {3, 4}
    assert graph.allowed_map([1, 2, 3]) == {1: {3}, 2: {3}, 3: {1, 2}}


def test_empty_input_builds_empty_graph():
    graph = ExclusionGraph.build([])
    assert len(graph) == 0
    assert graph.excluded_from(1) == frozenset()


def test_string_ids_are_canonicalized():
    graph = ExclusionGraph.build([("zoe", "adam")])
    assert graph.edges == frozenset({("adam", "zoe")})
    assert canonical_pair("b", "a") == ("a", "b")


def test_dangling_edges_reference_non_participants():
    graph = ExclusionGraph.build([(1, 2), (2, 9)])
    assert graph.dangling_edges([1, 2, 3]) == {(2, 9)}
