import pytest

from nodewar.core import Color, GameEngine, Graph, Phase


@pytest.fixture()
def graph():
    return Graph.hub()


@pytest.fixture()
def engine(graph):
    return GameEngine(graph)


@pytest.fixture()
def seated_engine(engine):
    """Two seats, X (red) and Y (blue), both with bound identities."""
    engine.connect("x")
    engine.connect("y")
    engine.bind_identity("x", "Xavier", Color.RED.value)
    engine.bind_identity("y", "Yara", Color.BLUE.value)
    return engine


@pytest.fixture()
def running_engine(seated_engine):
    """X starts on node 1, Y on node 9; the game is running."""
    seated_engine.select_start_node("x", 1)
    seated_engine.select_start_node("y", 9)
    assert seated_engine.phase == Phase.RUNNING
    return seated_engine


@pytest.fixture()
def place():
    """Set a node's owner and garrison directly, bypassing the rules."""
    def _place(engine, node_id, owner, troops):
        node = engine.state.nodes[node_id]
        if owner is None:
            node.neutralize()
        else:
            node.claim(owner, engine.registry.get(owner).color, troops)
        return node
    return _place
