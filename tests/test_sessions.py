import pytest

from nodewar.core import (
    OBSERVER_COLOR,
    UNSET_COLOR,
    Color,
    Phase,
    Rejection,
    Role,
    SessionRegistry,
    SessionStatus,
)


def test_seats_then_observers():
    registry = SessionRegistry(capacity=2)
    assert registry.connect("a").role == Role.SEAT
    assert registry.connect("b").role == Role.SEAT
    observer = registry.connect("c")
    assert observer.role == Role.OBSERVER
    assert observer.color == OBSERVER_COLOR
    assert observer.name == "Observer-c"
    assert [s.id for s in registry.seats()] == ["a", "b"]
    assert [s.id for s in registry.observers()] == ["c"]


def test_duplicate_session_raises():
    registry = SessionRegistry()
    registry.connect("a")
    with pytest.raises(ValueError):
        registry.connect("a")


def test_all_seats_ready_needs_full_table():
    registry = SessionRegistry(capacity=2)
    registry.connect("a").ready = True
    assert not registry.all_seats_ready()
    registry.connect("b")
    assert not registry.all_seats_ready()
    registry.get("b").ready = True
    assert registry.all_seats_ready()


def test_connect_welcomes_session(engine):
    result = engine.connect("x")
    welcome, state = result.events
    assert welcome.type == "welcome"
    assert welcome.recipient == "x"
    assert welcome.payload["role"] == "seat"
    assert welcome.payload["available_colors"] == [c.value for c in Color]
    assert welcome.payload["rules"]["min_transfer"] == 10
    assert state.type == "game_state"
    assert state.recipient is None


def test_bind_identity_moves_lobby_to_selecting_once(engine):
    engine.connect("x")
    engine.connect("y")
    assert engine.phase == Phase.LOBBY

    first = engine.bind_identity("x", "  Xavier  ", Color.RED.value)
    assert first.applied
    assert [e.type for e in first.events] == ["game_state", "phase_changed", "game_state"]
    assert first.events[-1].payload["phase"] == "selecting"
    assert engine.phase == Phase.SELECTING
    assert engine.registry.get("x").name == "Xavier"

    second = engine.bind_identity("y", "Yara", Color.BLUE.value)
    assert [e.type for e in second.events] == ["game_state"]


def test_bind_identity_defaults_and_truncates_name(engine):
    engine.connect("x")
    engine.connect("y")
    engine.bind_identity("x", "", Color.RED.value)
    engine.bind_identity("y", "y" * 100, Color.BLUE.value)
    assert engine.registry.get("x").name == "Player-x"
    assert len(engine.registry.get("y").name) == 24


@pytest.mark.parametrize("color,reason", [
    ("#123456", Rejection.INVALID_COLOR),
    (UNSET_COLOR, Rejection.INVALID_COLOR),
    (Color.RED.value, Rejection.COLOR_TAKEN),
])
def test_bind_identity_rejects_bad_colors(seated_engine, color, reason):
    seated_engine.disconnect("y")
    seated_engine.connect("z")
    assert seated_engine.registry.get("z").role == Role.SEAT
    result = seated_engine.bind_identity("z", "Zed", color)
    assert not result.applied
    assert result.reason == reason
    assert [e.type for e in result.events] == ["command_rejected"]
    assert result.events[0].recipient == "z"


def test_seat_may_change_colour_before_selecting(seated_engine):
    result = seated_engine.bind_identity("x", "Xavier", Color.GREEN.value)
    assert result.applied
    assert seated_engine.registry.available_colors() == [
        Color.RED.value, Color.CYAN.value, Color.PURPLE.value, Color.PINK.value]


def test_observer_cannot_bind(seated_engine):
    seated_engine.connect("z")
    result = seated_engine.bind_identity("z", "Zed", Color.GREEN.value)
    assert result.reason == Rejection.OBSERVER_FORBIDDEN
    assert seated_engine.registry.get("z").color == OBSERVER_COLOR


def test_unknown_session_is_rejected_without_notice(engine):
    result = engine.bind_identity("ghost", "Ghost", Color.RED.value)
    assert result.reason == Rejection.UNKNOWN_SESSION
    assert result.events == []


def test_bind_identity_after_selection_is_rejected(seated_engine):
    seated_engine.select_start_node("x", 1)
    result = seated_engine.bind_identity("x", "Xavier", Color.GREEN.value)
    assert result.reason == Rejection.ALREADY_READY
    assert seated_engine.state.nodes[1].owner_color == Color.RED.value


def test_bind_identity_while_running_is_rejected(running_engine):
    result = running_engine.bind_identity("x", "X", Color.GREEN.value)
    assert result.reason == Rejection.INVALID_PHASE


def test_unready_seat_is_released_on_disconnect(seated_engine):
    seated_engine.connect("z")
    result = seated_engine.disconnect("y")
    assert result.applied
    assert "y" not in seated_engine.registry
    assert [e.type for e in result.events] == ["game_state"]

    # the freed seat goes to the next connection
    joined = seated_engine.connect("w")
    assert joined.events[0].payload["role"] == "seat"
    assert seated_engine.registry.get("w").role == Role.SEAT


def test_ready_seat_keeps_nodes_on_disconnect(running_engine):
    result = running_engine.disconnect("x")
    assert result.applied
    session = running_engine.registry.get("x")
    assert session.status == SessionStatus.DISCONNECTED
    assert running_engine.state.nodes[1].owner == "x"
    assert running_engine.phase == Phase.RUNNING


def test_observer_disconnect(running_engine):
    running_engine.connect("z")
    running_engine.disconnect("z")
    assert "z" not in running_engine.registry


def test_disconnect_unknown_session(engine):
    result = engine.disconnect("ghost")
    assert not result.applied
    assert result.events == []
