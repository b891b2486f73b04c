"""
Client Library for Node War

This library provides a base class for scripted players. It takes care of
the WebSocket connection, identity binding and message parsing, so a bot
only has to decide where to start and which transfers to send.

Usage:
1. Inherit from GameClient
2. Implement choose_start_node() and play()
3. Call client.run() to start

Example:
    class MyBot(GameClient):
        def choose_start_node(self, view):
            return view.neutral_nodes[0].id

        def play(self, view):
            transfers = []
            for node in view.frontline_nodes():
                for target in view.enemy_neighbors(node.id):
                    if view.can_capture(node.id, target.id, node.troops):
                        transfers.append(Transfer(node.id, target.id, node.troops))
            return transfers

    MyBot("Alice", "#f52900").run()
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import websockets
from websockets.asyncio.client import ClientConnection, connect

from nodewar.config import GameDefaults, ServerConfig

logger = logging.getLogger(__name__)


@dataclass
class NodeView:
    """A node as seen by one client."""
    id: int
    adjacency: List[int]
    owner: Optional[str]
    owner_color: Optional[str]
    troops: int
    my_id: Optional[str] = None

    @property
    def is_mine(self) -> bool:
        return self.owner is not None and self.owner == self.my_id

    @property
    def is_neutral(self) -> bool:
        return self.owner is None

    @property
    def is_enemy(self) -> bool:
        return not self.is_mine and not self.is_neutral


@dataclass
class Transfer:
    """A troop transfer to send to the server."""
    from_node: int
    to_node: int
    amount: int

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": "send_troops",
            "from_node_id": self.from_node,
            "to_node_id": self.to_node,
            "amount": self.amount,
        }


class GameView:
    """
    Convenient wrapper around a raw game_state message that provides easy
    access to nodes and their relationships.
    """

    def __init__(self, raw_state: Dict[str, Any], my_id: Optional[str],
                 min_transfer: int = GameDefaults.MIN_TRANSFER):
        self.raw = raw_state
        self.my_id = my_id
        self.min_transfer = min_transfer
        self.phase = raw_state.get("phase", "lobby")
        self.winner = raw_state.get("winner")
        self.players = {p["id"]: p for p in raw_state.get("players", [])}

        self.nodes: Dict[int, NodeView] = {}
        for n_data in raw_state.get("nodes", []):
            node = NodeView(
                id=n_data["id"],
                adjacency=list(n_data.get("adjacency", [])),
                owner=n_data.get("owner"),
                owner_color=n_data.get("owner_color"),
                troops=n_data.get("troops", 0),
                my_id=my_id,
            )
            self.nodes[node.id] = node

        self.my_nodes = [n for n in self.nodes.values() if n.is_mine]
        self.enemy_nodes = [n for n in self.nodes.values() if n.is_enemy]
        self.neutral_nodes = [n for n in self.nodes.values() if n.is_neutral]

    def get_node(self, node_id: int) -> Optional[NodeView]:
        return self.nodes.get(node_id)

    def neighbors(self, node_id: int) -> List[NodeView]:
        node = self.nodes.get(node_id)
        if node is None:
            return []
        return [self.nodes[nid] for nid in node.adjacency if nid in self.nodes]

    def enemy_neighbors(self, node_id: int) -> List[NodeView]:
        return [n for n in self.neighbors(node_id) if n.is_enemy]

    def neutral_neighbors(self, node_id: int) -> List[NodeView]:
        return [n for n in self.neighbors(node_id) if n.is_neutral]

    def my_neighbors(self, node_id: int) -> List[NodeView]:
        return [n for n in self.neighbors(node_id) if n.is_mine]

    def frontline_nodes(self) -> List[NodeView]:
        """My nodes that touch an enemy or neutral node."""
        return [n for n in self.my_nodes if any(not m.is_mine for m in self.neighbors(n.id))]

    def can_capture(self, from_node: int, to_node: int, amount: int) -> bool:
        """Check whether sending `amount` would take the target; False for own nodes."""
        source = self.get_node(from_node)
        target = self.get_node(to_node)
        if not source or not target or not source.is_mine or target.is_mine:
            return False
        if to_node not in source.adjacency:
            return False
        if amount < self.min_transfer or amount > source.troops:
            return False
        return target.is_neutral or amount > target.troops

    def distance_to_frontline(self, node_id: int) -> int:
        """
        Shortest number of steps through my own nodes from `node_id` to a
        frontline node. 0 if the node is on the frontline, -1 if it is not
        mine or no frontline can be reached.
        """
        node = self.get_node(node_id)
        if not node or not node.is_mine:
            return -1

        frontline = {n.id for n in self.frontline_nodes()}
        if node_id in frontline:
            return 0

        queue = deque([(node_id, 0)])
        visited = {node_id}
        while queue:
            current, distance = queue.popleft()
            for neighbor in self.my_neighbors(current):
                if neighbor.id in visited:
                    continue
                if neighbor.id in frontline:
                    return distance + 1
                visited.add(neighbor.id)
                queue.append((neighbor.id, distance + 1))
        return -1

    @property
    def is_selecting(self) -> bool:
        return self.phase in ("lobby", "selecting")

    @property
    def is_running(self) -> bool:
        return self.phase == "running"

    @property
    def is_over(self) -> bool:
        return self.phase == "over"


class GameClient(ABC):
    """
    Abstract base class for scripted players. Handles all WebSocket
    communication and calls back into the strategy methods.
    """

    def __init__(self, name: str, color: Optional[str] = None,
                 server_url: Optional[str] = None):
        """
        Initialize the client.

        Args:
            name: Display name to bind
            color: Palette colour to bind; the first free one if None
            server_url: WebSocket URL of the game server
        """
        self.name = name
        self.color = color
        self.server_url = server_url or f"ws://{ServerConfig.HOST}:{ServerConfig.PORT}"
        self.websocket: Optional[ClientConnection] = None
        self.session_id: Optional[str] = None
        self.role: Optional[str] = None
        self.rules: Dict[str, Any] = {}
        self.view: Optional[GameView] = None
        self.has_start_node = False
        self.running = False

        logger.info(f"Client {self.name} initialized")

    @abstractmethod
    def choose_start_node(self, view: GameView) -> Optional[int]:
        """Pick a neutral node to start from, or None to wait."""

    @abstractmethod
    def play(self, view: GameView) -> List[Transfer]:
        """
        Main strategy - implement this method.

        Called with every new game state while the game is running.
        """

    # Connection and game loop management

    async def send(self, message: Dict[str, Any]) -> None:
        if not self.websocket:
            return
        try:
            await self.websocket.send(json.dumps(message))
        except websockets.exceptions.ConnectionClosed:
            logger.warning(f"[{self.name}] Connection closed while sending {message.get('type')}")

    async def send_transfers(self, transfers: List[Transfer]) -> None:
        for transfer in transfers:
            await self.send(transfer.to_message())
        if transfers:
            logger.debug(f"[{self.name}] Sent {len(transfers)} transfers")

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Handle an incoming message from the server."""
        message_type = message.get("type")

        if message_type == "welcome":
            self.session_id = message.get("session_id")
            self.role = message.get("role")
            self.rules = message.get("rules", {})
            logger.info(f"[{self.name}] Joined as {self.role} ({self.session_id})")

            if self.role == "seat":
                available = message.get("available_colors", [])
                color = self.color if self.color else (available[0] if available else None)
                if color is None:
                    logger.warning(f"[{self.name}] No colour available")
                    return
                self.color = color
                await self.send({"type": "set_player_info", "name": self.name, "color": color})

        elif message_type == "game_state":
            self.view = GameView(message, self.session_id,
                                 self.rules.get("min_transfer", GameDefaults.MIN_TRANSFER))
            if self.role != "seat":
                return

            if self.view.is_selecting and not self.has_start_node:
                node_id = self.choose_start_node(self.view)
                if node_id is not None:
                    await self.send({"type": "select_start_node", "node_id": node_id})

            elif self.view.is_running:
                try:
                    transfers = self.play(self.view) or []
                except Exception as e:
                    logger.error(f"[{self.name}] Error in play: {e}")
                    transfers = []
                await self.send_transfers(transfers)

        elif message_type == "select_start_node_success":
            self.has_start_node = True
            logger.info(f"[{self.name}] Starting from node {message.get('node_id')}")

        elif message_type == "phase_changed":
            logger.info(f"[{self.name}] Phase {message.get('old_phase')} -> {message.get('new_phase')}")

        elif message_type == "game_over":
            logger.info(f"[{self.name}] Game over! Winner: {message.get('winner_name')}")
            self.running = False

        elif message_type == "command_rejected":
            logger.debug(f"[{self.name}] {message.get('command')} rejected: {message.get('reason')}")

        elif message_type == "error":
            logger.warning(f"[{self.name}] Server error: {message.get('message', 'Unknown error')}")

        else:
            logger.debug(f"[{self.name}] Unknown message type: {message_type}")

    async def game_loop(self) -> None:
        """Main loop - handles messages from the server until the game ends."""
        try:
            while self.running:
                try:
                    message = json.loads(await self.websocket.recv())
                    if not isinstance(message, dict):
                        logger.warning(f"[{self.name}] Ignoring non-object message: {message!r}")
                        continue
                    await self.handle_message(message)
                except json.JSONDecodeError:
                    logger.warning(f"[{self.name}] Received invalid JSON, ignoring")
                except websockets.exceptions.ConnectionClosed:
                    logger.info(f"[{self.name}] Connection closed by server")
                    break
        finally:
            self.running = False

    def run(self) -> None:
        """Run the client (blocking call)."""
        asyncio.run(self._run_async())

    async def _run_async(self) -> None:
        self.running = True
        logger.info(f"[{self.name}] Connecting to {self.server_url}")
        try:
            async with connect(self.server_url) as websocket:
                self.websocket = websocket
                await self.game_loop()
        except OSError as e:
            logger.error(f"[{self.name}] Connection failed: {e}")
        finally:
            self.websocket = None
            logger.info(f"[{self.name}] Client terminated")
