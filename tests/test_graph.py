import pytest

from nodewar.core import Graph


CLASSIC_BOARD = {
    1: [2, 4, 5],
    2: [1, 3, 5],
    3: [2, 5, 6],
    4: [1, 5, 7],
    5: [1, 2, 3, 4, 6, 7, 8, 9],
    6: [3, 5, 9],
    7: [4, 5, 8],
    8: [5, 7, 9],
    9: [5, 6, 8],
}


def assert_symmetric(graph):
    for node_id in graph:
        assert node_id not in graph.neighbors(node_id)
        for neighbor in graph.neighbors(node_id):
            assert node_id in graph.neighbors(neighbor)


def test_hub_matches_classic_board():
    graph = Graph.hub()
    assert {n: list(graph.neighbors(n)) for n in graph} == CLASSIC_BOARD
    assert len(graph.edges()) == 16
    assert graph.is_connected()


@pytest.mark.parametrize("factory", [Graph.grid, Graph.hub, Graph.hex])
@pytest.mark.parametrize("width,height", [(2, 2), (3, 3), (5, 4)])
def test_generated_graphs_are_symmetric_and_connected(factory, width, height):
    graph = factory(width, height)
    assert len(graph) == width * height
    assert min(graph.node_ids) == 1
    assert_symmetric(graph)
    assert graph.is_connected()


def test_grid_degrees():
    graph = Graph.grid(3, 3)
    assert graph.neighbors(1) == (2, 4)
    assert graph.neighbors(5) == (2, 4, 6, 8)
    assert len(graph.edges()) == 12


def test_hex_inner_node_has_six_neighbors():
    graph = Graph.hex(3, 3)
    assert len(graph.neighbors(5)) == 6


def test_adjacency_order_is_kept_and_duplicates_dropped():
    graph = Graph({1: [3, 2, 3], 2: [1], 3: [1]})
    assert graph.neighbors(1) == (3, 2)
    assert graph.is_adjacent(1, 3)
    assert not graph.is_adjacent(2, 3)
    assert not graph.is_adjacent(1, 99)


@pytest.mark.parametrize("adjacency,message", [
    ({}, "at least one node"),
    ({1: [1]}, "Self-loop"),
    ({1: [2], 2: []}, "not symmetric"),
    ({1: [2]}, "unknown node"),
    ({0: []}, "positive integer"),
    ({"a": []}, "positive integer"),
])
def test_invalid_graphs_are_rejected(adjacency, message):
    with pytest.raises(ValueError, match=message):
        Graph(adjacency)


def test_unknown_node_neighbors_raise():
    with pytest.raises(ValueError):
        Graph.hub().neighbors(42)


def test_graph_is_not_changed_by_caller_mutation():
    source = {1: [2], 2: [1]}
    graph = Graph(source)
    source[1].append(3)
    assert graph.neighbors(1) == (2,)


def test_build_by_name():
    assert len(Graph.build("grid", 4, 2)) == 8
    with pytest.raises(ValueError, match="Unknown map type"):
        Graph.build("torus", 3, 3)


def test_dimensions_are_limited():
    with pytest.raises(ValueError, match="width"):
        Graph.grid(1, 3)
    with pytest.raises(ValueError, match="height"):
        Graph.hex(3, 100)
