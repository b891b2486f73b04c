"""
Node War - Core Game Engine

This module contains the authoritative game state for a real-time
territory-control game played on a small undirected graph: the immutable
graph, the session registry, per-node ownership and troops, the phase state
machine and the command processor that validates and applies player
commands.

Everything here is synchronous. Serializing access to a GameEngine is the
job of its owner (see nodewar.server.GameInstance).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from nodewar.config import GameDefaults, MapConfig

logger = logging.getLogger(__name__)


class Phase(Enum):
    """Enumeration for game phases."""
    LOBBY = "lobby"
    SELECTING = "selecting"
    RUNNING = "running"
    OVER = "over"


class Role(Enum):
    """Enumeration for session roles."""
    SEAT = "seat"
    OBSERVER = "observer"


class SessionStatus(Enum):
    """Enumeration for session connection states."""
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


class Color(Enum):
    """Display colours a seat may bind to."""
    RED = "#f52900"
    BLUE = "#5454ff"
    CYAN = "#00ccf5"
    PURPLE = "#7b00f5"
    GREEN = "#258030"
    PINK = "#e900f5"


UNSET_COLOR = "#ffffff"
OBSERVER_COLOR = "#888888"


class Rejection(Enum):
    """Reasons a command is not applied."""
    INVALID_PHASE = "invalid_phase"
    UNKNOWN_SESSION = "unknown_session"
    OBSERVER_FORBIDDEN = "observer_forbidden"
    IDENTITY_UNBOUND = "identity_unbound"
    ALREADY_READY = "already_ready"
    UNKNOWN_NODE = "unknown_node"
    ALREADY_OWNED = "already_owned"
    NOT_ADJACENT = "not_adjacent"
    NOT_OWNER = "not_owner"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_COLOR = "invalid_color"
    COLOR_TAKEN = "color_taken"


class Outcome(Enum):
    """What happened at the destination of a troop transfer."""
    CLAIMED = "claimed"
    REINFORCED = "reinforced"
    REPELLED = "repelled"
    CAPTURED = "captured"
    NEUTRALIZED = "neutralized"


# Command names, shared with the server's dispatch table
BIND_IDENTITY = "bind_identity"
SELECT_START_NODE = "select_start_node"
TRANSFER_TROOPS = "transfer_troops"
GROW = "grow"

# Phase rules: which mutating commands are allowed in which phases
PHASE_ALLOWED_COMMANDS: Dict[Phase, Set[str]] = {
    Phase.LOBBY: {BIND_IDENTITY, SELECT_START_NODE},
    Phase.SELECTING: {BIND_IDENTITY, SELECT_START_NODE},
    Phase.RUNNING: {TRANSFER_TROOPS, GROW},
    Phase.OVER: set(),
}


# ===== Events =====

GAME_STATE = "game_state"
WELCOME = "welcome"
SELECT_START_NODE_SUCCESS = "select_start_node_success"
PHASE_CHANGED = "phase_changed"
GAME_OVER = "game_over"
COMMAND_REJECTED = "command_rejected"


@dataclass
class GameEvent:
    """
    A notification produced by the engine.

    Attributes:
        type: Event type, also the "type" field of the wire message
        payload: Event data
        recipient: Session the event is addressed to, or None to broadcast
    """
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    recipient: Optional[str] = None

    def to_message(self) -> Dict[str, Any]:
        """Convert the event to the JSON message sent to clients."""
        return {"type": self.type, **self.payload}


def game_state(snapshot: Dict[str, Any]) -> GameEvent:
    return GameEvent(GAME_STATE, snapshot)


def welcome(session: "Session", available_colors: List[str], rules: Dict[str, Any]) -> GameEvent:
    return GameEvent(WELCOME, {
        "session_id": session.id,
        "role": session.role.value,
        "available_colors": available_colors,
        "rules": rules,
    }, recipient=session.id)


def select_start_node_success(session_id: str, node_id: int) -> GameEvent:
    return GameEvent(SELECT_START_NODE_SUCCESS, {"node_id": node_id}, recipient=session_id)


def phase_changed(old_phase: Phase, new_phase: Phase) -> GameEvent:
    return GameEvent(PHASE_CHANGED, {
        "old_phase": old_phase.value,
        "new_phase": new_phase.value,
    })


def game_over(winner_id: str, winner_name: str) -> GameEvent:
    return GameEvent(GAME_OVER, {
        "winner_id": winner_id,
        "winner_name": winner_name,
    })


def command_rejected(session_id: str, command: str, reason: Rejection) -> GameEvent:
    return GameEvent(COMMAND_REJECTED, {
        "command": command,
        "reason": reason.value,
    }, recipient=session_id)


@dataclass
class CommandResult:
    """
    Result of running one command through the engine.

    A rejected command carries no game_state event: the only event it may
    carry is the command_rejected notice for the session that issued it.
    """
    applied: bool
    events: List[GameEvent] = field(default_factory=list)
    reason: Optional[Rejection] = None

    @classmethod
    def rejected(cls, command: str, reason: Rejection,
                 session_id: Optional[str] = None) -> "CommandResult":
        logger.debug(f"Rejected {command} from {session_id}: {reason.value}")
        events = [command_rejected(session_id, command, reason)] if session_id else []
        return cls(False, events, reason)


# ===== Configuration =====

@dataclass(frozen=True)
class EngineConfig:
    """Tunable game rules; defaults come from GameDefaults."""
    seat_capacity: int = GameDefaults.SEAT_CAPACITY
    min_transfer: int = GameDefaults.MIN_TRANSFER
    tick_period: float = GameDefaults.TICK_PERIOD
    growth_per_tick: int = GameDefaults.GROWTH_PER_TICK
    initial_troops: int = GameDefaults.INITIAL_TROOPS

    def __post_init__(self):
        """Validate the rules."""
        if self.seat_capacity < 1:
            raise ValueError("Seat capacity must be at least 1")
        if self.min_transfer < 1:
            raise ValueError("Minimum transfer must be positive")
        if self.tick_period <= 0:
            raise ValueError("Tick period must be positive")
        if self.growth_per_tick < 0:
            raise ValueError("Growth per tick cannot be negative")
        if self.initial_troops < 1:
            raise ValueError("Initial troops must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seat_capacity": self.seat_capacity,
            "min_transfer": self.min_transfer,
            "tick_period": self.tick_period,
            "growth_per_tick": self.growth_per_tick,
            "initial_troops": self.initial_troops,
        }


# ===== Graph =====

@dataclass
class Node:
    """
    Represents a node in the game graph.

    Attributes:
        id: Unique identifier for the node
        adjacency: IDs of neighbouring nodes, in graph order
        owner: Session ID of the owning seat, or None if neutral
        owner_color: Display colour of the owner, or None if neutral
        troops: Number of troops garrisoned on this node
    """
    id: int
    adjacency: Tuple[int, ...]
    owner: Optional[str] = None
    owner_color: Optional[str] = None
    troops: int = 0

    def __post_init__(self):
        """Validate node data after initialization."""
        if self.troops < 0:
            raise ValueError("Troop count cannot be negative")
        if self.owner is None and (self.troops != 0 or self.owner_color is not None):
            raise ValueError("Neutral nodes hold no troops and no colour")

    @property
    def is_neutral(self) -> bool:
        return self.owner is None

    def claim(self, owner: str, color: str, troops: int) -> None:
        self.owner = owner
        self.owner_color = color
        self.troops = troops

    def neutralize(self) -> None:
        self.owner = None
        self.owner_color = None
        self.troops = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "adjacency": list(self.adjacency),
            "owner": self.owner,
            "owner_color": self.owner_color,
            "troops": self.troops,
        }


class Graph:
    """
    Immutable undirected graph of node adjacencies.

    Built once from a mapping of node ID to neighbour IDs and validated:
    IDs are positive integers, every neighbour exists, adjacency is
    symmetric and there are no self-loops.
    """

    def __init__(self, adjacency: Mapping[int, Iterable[int]]):
        """
        Build and validate the graph.

        Args:
            adjacency: Mapping of node ID to the IDs of its neighbours

        Raises:
            ValueError: If the adjacency is not a valid undirected graph
        """
        if not adjacency:
            raise ValueError("Graph must contain at least one node")

        self._adjacency: Dict[int, Tuple[int, ...]] = {}
        for node_id, neighbors in adjacency.items():
            if not isinstance(node_id, int) or isinstance(node_id, bool) or node_id <= 0:
                raise ValueError(f"Node ID {node_id!r} must be a positive integer")
            # Keep first occurrence order, drop duplicates
            self._adjacency[node_id] = tuple(dict.fromkeys(neighbors))

        for node_id, neighbors in self._adjacency.items():
            for neighbor in neighbors:
                if neighbor == node_id:
                    raise ValueError(f"Self-loop on node {node_id} is not allowed")
                if neighbor not in self._adjacency:
                    raise ValueError(f"Node {node_id} references unknown node {neighbor}")
                if node_id not in self._adjacency[neighbor]:
                    raise ValueError(f"Edge {node_id}-{neighbor} is not symmetric")

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._adjacency

    def __len__(self) -> int:
        return len(self._adjacency)

    def __iter__(self):
        return iter(self._adjacency)

    @property
    def node_ids(self) -> Tuple[int, ...]:
        return tuple(self._adjacency)

    def neighbors(self, node_id: int) -> Tuple[int, ...]:
        """
        Get the neighbours of a node.

        Raises:
            ValueError: If the node doesn't exist
        """
        if node_id not in self._adjacency:
            raise ValueError(f"Node {node_id} doesn't exist")
        return self._adjacency[node_id]

    def is_adjacent(self, from_node: int, to_node: int) -> bool:
        return to_node in self._adjacency.get(from_node, ())

    def edges(self) -> List[Tuple[int, int]]:
        """List every undirected edge once, as (lower ID, higher ID)."""
        return sorted({(min(a, b), max(a, b))
                       for a, neighbors in self._adjacency.items() for b in neighbors})

    def is_connected(self) -> bool:
        """Check if the graph is connected using BFS."""
        start = next(iter(self._adjacency))
        visited = {start}
        queue = [start]
        while queue:
            current = queue.pop(0)
            for neighbor in self._adjacency[current]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)
        return len(visited) == len(self._adjacency)

    @staticmethod
    def _check_dimensions(width: int, height: int) -> None:
        if not (MapConfig.MIN_WIDTH <= width <= MapConfig.MAX_WIDTH):
            raise ValueError(f"Grid width must be between {MapConfig.MIN_WIDTH} and {MapConfig.MAX_WIDTH}")
        if not (MapConfig.MIN_HEIGHT <= height <= MapConfig.MAX_HEIGHT):
            raise ValueError(f"Grid height must be between {MapConfig.MIN_HEIGHT} and {MapConfig.MAX_HEIGHT}")

    @classmethod
    def grid(cls, width: int, height: int) -> "Graph":
        """
        Generate a grid graph connecting orthogonally adjacent cells.

        Nodes are numbered from 1 in row-major order.
        """
        cls._check_dimensions(width, height)
        adjacency: Dict[int, List[int]] = {}
        for y in range(height):
            for x in range(width):
                neighbors = []
                if y > 0:
                    neighbors.append((y - 1) * width + x + 1)
                if x > 0:
                    neighbors.append(y * width + x)
                if x < width - 1:
                    neighbors.append(y * width + x + 2)
                if y < height - 1:
                    neighbors.append((y + 1) * width + x + 1)
                adjacency[y * width + x + 1] = sorted(neighbors)
        return cls(adjacency)

    @classmethod
    def hub(cls, width: int = 3, height: int = 3) -> "Graph":
        """
        Generate a grid whose centre node is connected to every other node.

        The default 3x3 board is the classic nine-node map: node 5 touches
        all others, the rest follow the grid.
        """
        cls._check_dimensions(width, height)
        base = cls.grid(width, height)
        centre = (height // 2) * width + width // 2 + 1
        adjacency = {node_id: set(base.neighbors(node_id)) for node_id in base}
        for node_id in adjacency:
            if node_id != centre:
                adjacency[node_id].add(centre)
                adjacency[centre].add(node_id)
        return cls({node_id: sorted(neighbors) for node_id, neighbors in adjacency.items()})

    @classmethod
    def hex(cls, width: int, height: int) -> "Graph":
        """
        Generate an offset hexagonal grid where inner nodes have 6 neighbours.

        Odd rows are shifted half a cell to the right.
        """
        cls._check_dimensions(width, height)
        adjacency: Dict[int, Set[int]] = {row * width + col + 1: set()
                                          for row in range(height) for col in range(width)}
        for row in range(height):
            shift = row % 2
            for col in range(width):
                current = row * width + col + 1
                potential = [
                    (col - 1 + shift, row - 1), (col + shift, row - 1),
                    (col - 1, row), (col + 1, row),
                    (col - 1 + shift, row + 1), (col + shift, row + 1),
                ]
                for neighbor_col, neighbor_row in potential:
                    if 0 <= neighbor_col < width and 0 <= neighbor_row < height:
                        neighbor = neighbor_row * width + neighbor_col + 1
                        adjacency[current].add(neighbor)
                        adjacency[neighbor].add(current)
        return cls({node_id: sorted(neighbors) for node_id, neighbors in adjacency.items()})

    @classmethod
    def build(cls, map_type: str, width: int, height: int) -> "Graph":
        """Build a graph by map type name ("hub", "grid" or "hex")."""
        if map_type == "hub":
            return cls.hub(width, height)
        if map_type == "grid":
            return cls.grid(width, height)
        if map_type == "hex":
            return cls.hex(width, height)
        raise ValueError(f"Unknown map type {map_type!r}, expected one of {MapConfig.MAP_TYPES}")


# ===== Sessions =====

@dataclass
class Session:
    """
    A connected participant.

    Attributes:
        id: Connection-scoped identifier
        role: Seat (may play) or observer (read-only)
        name: Display name
        color: Display colour, UNSET_COLOR until bound
        ready: True once the seat has claimed a start node
        status: Whether the connection is still open
    """
    id: str
    role: Role
    name: str = ""
    color: str = UNSET_COLOR
    ready: bool = False
    status: SessionStatus = SessionStatus.ACTIVE

    @property
    def is_seat(self) -> bool:
        return self.role == Role.SEAT

    @property
    def has_identity(self) -> bool:
        return self.color != UNSET_COLOR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "role": self.role.value,
            "ready": self.ready,
            "status": self.status.value,
        }


class SessionRegistry:
    """Tracks connected sessions and hands out the fixed number of seats."""

    def __init__(self, capacity: int = GameDefaults.SEAT_CAPACITY):
        self.capacity = capacity
        self.sessions: Dict[str, Session] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self.sessions

    def get(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def seats(self) -> List[Session]:
        return [s for s in self.sessions.values() if s.is_seat]

    def observers(self) -> List[Session]:
        return [s for s in self.sessions.values() if not s.is_seat]

    def connect(self, session_id: str) -> Session:
        """
        Register a new connection as a seat, or as an observer when all
        seats are taken.

        Raises:
            ValueError: If the session ID is already registered
        """
        if session_id in self.sessions:
            raise ValueError(f"Session {session_id} already exists")

        if len(self.seats()) < self.capacity:
            session = Session(session_id, Role.SEAT)
        else:
            session = Session(session_id, Role.OBSERVER, name=f"Observer-{session_id}",
                              color=OBSERVER_COLOR)
        self.sessions[session_id] = session
        return session

    def release(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)

    def all_seats_ready(self) -> bool:
        seats = self.seats()
        return len(seats) == self.capacity and all(s.ready for s in seats)

    def color_in_use(self, color: str, excluding: Optional[str] = None) -> bool:
        return any(s.color == color for s in self.seats() if s.id != excluding)

    def available_colors(self) -> List[str]:
        return [c.value for c in Color if not self.color_in_use(c.value)]

    def to_list(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self.sessions.values()]


# ===== Game state =====

class GameState:
    """
    Per-node ownership and troop counts plus the current phase.

    Attributes:
        graph: The immutable game graph
        nodes: Mutable node records by ID
        phase: Current phase
        winner: Session ID of the winner once the game is over
    """

    def __init__(self, graph: Graph):
        self.graph = graph
        self.nodes: Dict[int, Node] = {
            node_id: Node(node_id, graph.neighbors(node_id)) for node_id in graph
        }
        self.phase = Phase.LOBBY
        self.winner: Optional[str] = None

    def get_node(self, node_id: Any) -> Optional[Node]:
        if not isinstance(node_id, int) or isinstance(node_id, bool):
            return None
        return self.nodes.get(node_id)

    def owners(self) -> Set[str]:
        """Distinct non-null owners across all nodes."""
        return {node.owner for node in self.nodes.values() if node.owner is not None}

    def nodes_owned_by(self, owner: str) -> List[Node]:
        return [node for node in self.nodes.values() if node.owner == owner]

    def total_troops(self, owner: str) -> int:
        return sum(node.troops for node in self.nodes_owned_by(owner))

    def to_dict(self, registry: SessionRegistry) -> Dict[str, Any]:
        """
        Convert the game state to the snapshot broadcast to all clients.

        Args:
            registry: Sessions to include in the player list

        Returns:
            Dictionary representation of the game state
        """
        return {
            "phase": self.phase.value,
            "nodes": [node.to_dict() for node in self.nodes.values()],
            "players": registry.to_list(),
            "winner": self.winner,
        }


def resolve_transfer(node: Node, attacker: str, color: str, amount: int) -> Outcome:
    """
    Land `amount` troops sent by `attacker` on `node` and resolve the result.

    Every (defender, amount) pair falls into exactly one outcome: a neutral
    node is claimed, an own node is reinforced, and an enemy node is either
    held (amount < defenders), captured (amount > defenders) or left
    neutral (amount == defenders).
    """
    if node.owner is None:
        node.claim(attacker, color, amount)
        return Outcome.CLAIMED

    if node.owner == attacker:
        node.troops += amount
        return Outcome.REINFORCED

    defenders = node.troops
    if amount < defenders:
        node.troops = defenders - amount
        return Outcome.REPELLED
    if amount > defenders:
        node.claim(attacker, color, amount - defenders)
        return Outcome.CAPTURED

    node.neutralize()
    return Outcome.NEUTRALIZED


class PhaseController:
    """
    The phase state machine.

    Lobby/Selecting -> Running fires once every seat is taken and ready;
    Running -> Over fires once a single owner remains. Over is terminal.
    """

    def __init__(self, state: GameState, registry: SessionRegistry):
        self.state = state
        self.registry = registry

    @property
    def phase(self) -> Phase:
        return self.state.phase

    def is_legal(self, command: str) -> bool:
        return command in PHASE_ALLOWED_COMMANDS[self.state.phase]

    def _transition(self, new_phase: Phase) -> GameEvent:
        old_phase = self.state.phase
        self.state.phase = new_phase
        logger.info(f"Phase changed: {old_phase.value} -> {new_phase.value}")
        return phase_changed(old_phase, new_phase)

    def check_selecting(self) -> List[GameEvent]:
        """Leave the lobby once a seat has bound its identity."""
        if self.state.phase == Phase.LOBBY and any(s.has_identity for s in self.registry.seats()):
            return [self._transition(Phase.SELECTING)]
        return []

    def check_start(self) -> List[GameEvent]:
        """Start the game when every seat is taken and has a start node."""
        if self.state.phase not in (Phase.LOBBY, Phase.SELECTING):
            return []
        if not self.registry.all_seats_ready():
            return []
        logger.info("All players selected start nodes. Game is now running.")
        return [self._transition(Phase.RUNNING)]

    def check_game_over(self) -> List[GameEvent]:
        """End the game when exactly one owner remains on the board."""
        if self.state.phase != Phase.RUNNING:
            return []
        owners = self.state.owners()
        if len(owners) != 1:
            return []

        winner_id = next(iter(owners))
        winner = self.registry.get(winner_id)
        winner_name = winner.name if winner and winner.name else "Unknown Player"
        self.state.winner = winner_id
        events = [self._transition(Phase.OVER)]
        logger.info(f"{winner_name} has won the game!")
        events.append(game_over(winner_id, winner_name))
        return events


class GameEngine:
    """
    Validates and applies commands against the graph, the session
    registry and the game state.

    Every public method runs to completion without suspending and returns
    a CommandResult. Invalid commands never raise: they are rejected with
    a reason and leave the state untouched.
    """

    def __init__(self, graph: Graph, config: Optional[EngineConfig] = None):
        """
        Initialize the engine with all nodes neutral and the game in the lobby.

        Args:
            graph: The game graph
            config: Game rules, GameDefaults if omitted
        """
        self.config = config or EngineConfig()
        self.graph = graph
        self.registry = SessionRegistry(self.config.seat_capacity)
        self.state = GameState(graph)
        self.phases = PhaseController(self.state, self.registry)

    @property
    def phase(self) -> Phase:
        return self.state.phase

    def snapshot(self) -> Dict[str, Any]:
        return self.state.to_dict(self.registry)

    def _state_event(self) -> GameEvent:
        return game_state(self.snapshot())

    def _applied(self, events: List[GameEvent], transitions: List[GameEvent]) -> CommandResult:
        """Append phase events, followed by a snapshot that carries the new phase."""
        if transitions:
            events.extend(transitions)
            events.append(self._state_event())
        return CommandResult(True, events)

    def _seat(self, command: str, session_id: str) -> Tuple[Optional[Session], Optional[CommandResult]]:
        """Resolve the acting seat, or the rejection for a non-seat."""
        session = self.registry.get(session_id)
        if session is None:
            return None, CommandResult.rejected(command, Rejection.UNKNOWN_SESSION)
        if not session.is_seat:
            return None, CommandResult.rejected(command, Rejection.OBSERVER_FORBIDDEN, session_id)
        return session, None

    # ----- session lifecycle -----

    def connect(self, session_id: str) -> CommandResult:
        """Register a connection and tell it who it is."""
        session = self.registry.connect(session_id)
        logger.info(f"Session {session_id} connected as {session.role.value}")
        return CommandResult(True, [
            welcome(session, self.registry.available_colors(), self.config.to_dict()),
            self._state_event(),
        ])

    def disconnect(self, session_id: str) -> CommandResult:
        """
        Handle a closed connection.

        A seat that has not claimed a start node yet gives its seat back.
        Any other session stays registered as disconnected and keeps the
        nodes it owns.
        """
        session = self.registry.get(session_id)
        if session is None:
            return CommandResult(False, reason=Rejection.UNKNOWN_SESSION)

        if session.is_seat and not session.ready and self.phase in (Phase.LOBBY, Phase.SELECTING):
            self.registry.release(session_id)
            logger.info(f"Seat {session_id} released before selecting a start node")
        elif not session.is_seat:
            self.registry.release(session_id)
            logger.info(f"Observer {session_id} left")
        else:
            session.status = SessionStatus.DISCONNECTED
            logger.info(f"Seat {session_id} disconnected, keeping "
                        f"{len(self.state.nodes_owned_by(session_id))} nodes")
        return CommandResult(True, [self._state_event()])

    # ----- commands -----

    def bind_identity(self, session_id: str, name: str, color: str) -> CommandResult:
        """Set a seat's display name and colour before the game starts."""
        if not self.phases.is_legal(BIND_IDENTITY):
            return CommandResult.rejected(BIND_IDENTITY, Rejection.INVALID_PHASE, session_id)

        session, rejection = self._seat(BIND_IDENTITY, session_id)
        if rejection:
            return rejection
        if session.ready:
            return CommandResult.rejected(BIND_IDENTITY, Rejection.ALREADY_READY, session_id)
        if color not in {c.value for c in Color}:
            return CommandResult.rejected(BIND_IDENTITY, Rejection.INVALID_COLOR, session_id)
        if self.registry.color_in_use(color, excluding=session_id):
            return CommandResult.rejected(BIND_IDENTITY, Rejection.COLOR_TAKEN, session_id)

        name = (name or "").strip()[:GameDefaults.MAX_NAME_LENGTH]
        session.name = name or f"Player-{session_id}"
        session.color = color
        logger.info(f"{session.name} joined with color {color} (ID {session_id})")

        events = [self._state_event()]
        return self._applied(events, self.phases.check_selecting())

    def select_start_node(self, session_id: str, node_id: int) -> CommandResult:
        """
        Claim an unowned node as a seat's starting position.

        Emits the success notice to the caller, the new state to everyone,
        then whatever the phase re-check produces.
        """
        if not self.phases.is_legal(SELECT_START_NODE):
            return CommandResult.rejected(SELECT_START_NODE, Rejection.INVALID_PHASE, session_id)

        session, rejection = self._seat(SELECT_START_NODE, session_id)
        if rejection:
            return rejection
        if not session.has_identity:
            return CommandResult.rejected(SELECT_START_NODE, Rejection.IDENTITY_UNBOUND, session_id)
        if session.ready:
            return CommandResult.rejected(SELECT_START_NODE, Rejection.ALREADY_READY, session_id)

        node = self.state.get_node(node_id)
        if node is None:
            return CommandResult.rejected(SELECT_START_NODE, Rejection.UNKNOWN_NODE, session_id)
        if node.owner is not None:
            logger.info(f"Node {node_id} is already owned, ignoring.")
            return CommandResult.rejected(SELECT_START_NODE, Rejection.ALREADY_OWNED, session_id)

        node.claim(session.id, session.color, self.config.initial_troops)
        session.ready = True
        logger.info(f"{session.name} selected node {node_id} as a start node.")

        events = [select_start_node_success(session_id, node_id), self._state_event()]
        transitions = self.phases.check_start()
        if transitions:
            # a single-seat game is decided as soon as it starts
            transitions.extend(self.phases.check_game_over())
        return self._applied(events, transitions)

    def _validate_transfer(self, session_id: str, from_id: int, to_id: int,
                           amount: int) -> Optional[CommandResult]:
        if not self.phases.is_legal(TRANSFER_TROOPS):
            return CommandResult.rejected(TRANSFER_TROOPS, Rejection.INVALID_PHASE, session_id)

        _, rejection = self._seat(TRANSFER_TROOPS, session_id)
        if rejection:
            return rejection

        source = self.state.get_node(from_id)
        target = self.state.get_node(to_id)
        if source is None or target is None:
            return CommandResult.rejected(TRANSFER_TROOPS, Rejection.UNKNOWN_NODE, session_id)

        if not self.graph.is_adjacent(from_id, to_id):
            return CommandResult.rejected(TRANSFER_TROOPS, Rejection.NOT_ADJACENT, session_id)

        if source.owner != session_id:
            return CommandResult.rejected(TRANSFER_TROOPS, Rejection.NOT_OWNER, session_id)

        if (not isinstance(amount, int) or isinstance(amount, bool)
                or amount < self.config.min_transfer or amount > source.troops):
            return CommandResult.rejected(TRANSFER_TROOPS, Rejection.INVALID_AMOUNT, session_id)

        return None

    def transfer_troops(self, session_id: str, from_id: int, to_id: int, amount: int) -> CommandResult:
        """
        Move troops one edge from a node the seat owns and resolve the arrival.

        Args:
            session_id: The acting seat
            from_id: Source node ID, owned by the seat
            to_id: Destination node ID, adjacent to the source
            amount: Troops to send, at least min_transfer and at most the
                source garrison

        Returns:
            CommandResult with the state broadcast and, when the transfer
            decided the game, the phase change and game-over events
        """
        rejection = self._validate_transfer(session_id, from_id, to_id, amount)
        if rejection:
            return rejection

        session = self.registry.get(session_id)
        source = self.state.nodes[from_id]
        target = self.state.nodes[to_id]

        source.troops -= amount
        outcome = resolve_transfer(target, session.id, session.color, amount)
        logger.info(f"{session.name} sent {amount} troops {from_id} -> {to_id}: {outcome.value}")

        events = [self._state_event()]
        return self._applied(events, self.phases.check_game_over())

    def grow(self) -> CommandResult:
        """Add the growth increment to every owned node; one broadcast per tick."""
        if not self.phases.is_legal(GROW):
            return CommandResult.rejected(GROW, Rejection.INVALID_PHASE)

        for node in self.state.nodes.values():
            if node.owner is not None:
                node.troops += self.config.growth_per_tick

        return CommandResult(True, [self._state_event()])
