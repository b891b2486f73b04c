"""
WebSocket Game Server for Node War.
"""

import argparse
import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import websockets
from websockets.asyncio.server import ServerConnection
from websockets.typing import Data

from nodewar.config import GameDefaults, MapConfig, ServerConfig
from nodewar.core import (
    BIND_IDENTITY,
    GROW,
    SELECT_START_NODE,
    TRANSFER_TROOPS,
    CommandResult,
    EngineConfig,
    GameEngine,
    GameEvent,
    Graph,
    Phase,
)

logger = logging.getLogger(__name__)


class ConnectionUtils:
    """Utility class for WebSocket communication."""

    @staticmethod
    async def send_message(websocket: ServerConnection, message: Dict[str, Any]) -> bool:
        """Send a message to a specific websocket connection."""
        try:
            await asyncio.wait_for(websocket.send(json.dumps(message)), ServerConfig.SEND_TIMEOUT)
            return True
        except websockets.exceptions.ConnectionClosed:
            return False
        except asyncio.TimeoutError:
            logger.warning(f"Timed out sending to {websocket.remote_address}")
            return False
        except Exception as e:
            logger.error(f"Error sending message: {e}")
            return False

    @staticmethod
    async def send_error(websocket: ServerConnection, error_message: str) -> bool:
        """Send an error message to a client."""
        return await ConnectionUtils.send_message(websocket, {
            "type": "error",
            "message": error_message
        })

    @staticmethod
    async def broadcast_to_connections(connections: Set[ServerConnection],
                                       message: Dict[str, Any]) -> List[ServerConnection]:
        """
        Broadcast a message to multiple connections.
        Returns list of disconnected websockets.
        """
        if not connections:
            return []

        message_json = json.dumps(message)
        disconnected = []

        for websocket in connections.copy():
            try:
                await asyncio.wait_for(websocket.send(message_json), ServerConfig.SEND_TIMEOUT)
            except websockets.exceptions.ConnectionClosed:
                disconnected.append(websocket)
            except asyncio.TimeoutError:
                logger.warning(f"Timed out broadcasting to {websocket.remote_address}, dropping it")
                disconnected.append(websocket)
            except Exception as e:
                logger.error(f"Error broadcasting to connection: {e}")
                disconnected.append(websocket)

        return disconnected


@dataclass
class QueuedCommand:
    """A command waiting for the game worker."""
    name: str
    args: tuple = ()
    result: Optional[asyncio.Future] = field(default=None, repr=False)


EventCallback = Callable[[GameEvent], Awaitable[None]]


class GameInstance:
    """
    Owns one GameEngine and serializes every mutation through a queue.

    Transport handlers and the growth ticker only enqueue commands. A
    single worker task takes one command at a time, applies it and delivers
    its events before taking the next, so observers see state versions in
    the order the mutations happened.
    """

    def __init__(self, graph: Graph | None = None, config: EngineConfig | None = None,
                 map_type: str | None = None, width: int | None = None, height: int | None = None,
                 server_callback: EventCallback | None = None):
        """Initialize the game instance."""
        self.map_type = map_type or GameDefaults.MAP_TYPE
        self.width = width or GameDefaults.GRID_WIDTH
        self.height = height or GameDefaults.GRID_HEIGHT
        graph = graph or Graph.build(self.map_type, self.width, self.height)

        self.engine = GameEngine(graph, config)
        self.tick_period = self.engine.config.tick_period

        # Server callback for delivering events
        self.server_callback = server_callback

        self.queue: asyncio.Queue[QueuedCommand] = asyncio.Queue()
        self.worker_task: Optional[asyncio.Task] = None
        self.ticker_task: Optional[asyncio.Task] = None

        self._handlers: Dict[str, Callable[..., CommandResult]] = {
            "connect": self.engine.connect,
            "disconnect": self.engine.disconnect,
            BIND_IDENTITY: self.engine.bind_identity,
            SELECT_START_NODE: self.engine.select_start_node,
            TRANSFER_TROOPS: self.engine.transfer_troops,
            GROW: self.engine.grow,
        }

        logger.info(f"Game instance created with {len(graph)} nodes ({self.map_type} map)")

    @property
    def running(self) -> bool:
        return self.worker_task is not None and not self.worker_task.done()

    def start(self) -> None:
        """Start the worker and the growth ticker."""
        if self.running:
            return
        self.worker_task = asyncio.create_task(self.worker_loop())
        self.ticker_task = asyncio.create_task(self.ticker_loop())

    async def stop(self) -> None:
        """Cancel the worker and the ticker."""
        for task in (self.ticker_task, self.worker_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    async def submit(self, name: str, *args) -> CommandResult:
        """
        Queue a command and wait until the worker has applied it and
        delivered its events.
        """
        if name not in self._handlers:
            raise ValueError(f"Unknown command {name!r}")
        future = asyncio.get_running_loop().create_future()
        await self.queue.put(QueuedCommand(name, args, future))
        return await future

    async def worker_loop(self) -> None:
        """Apply queued commands one at a time."""
        try:
            while True:
                command = await self.queue.get()
                try:
                    result = self._handlers[command.name](*command.args)
                    await self.deliver(result.events)
                    if command.result and not command.result.done():
                        command.result.set_result(result)
                except Exception as e:
                    logger.error(f"Error applying {command.name}: {e}")
                    if command.result and not command.result.done():
                        command.result.set_exception(e)
                finally:
                    self.queue.task_done()

                if self.engine.phase == Phase.OVER and self.ticker_task and not self.ticker_task.done():
                    self.ticker_task.cancel()

        except asyncio.CancelledError:
            logger.info("Game worker loop cancelled")
            raise

    async def ticker_loop(self) -> None:
        """Queue a growth tick every tick period; the engine ignores it outside Running."""
        try:
            while True:
                await asyncio.sleep(self.tick_period)
                await self.queue.put(QueuedCommand(GROW))
        except asyncio.CancelledError:
            logger.info("Growth ticker cancelled")
            raise

    async def deliver(self, events: List[GameEvent]) -> None:
        """Hand events to the server in order."""
        if not self.server_callback:
            return
        for event in events:
            await self.server_callback(event)


class GameServer:
    """
    WebSocket server for one game. Gives every connection a session ID and
    routes its messages to the GameInstance.
    """

    def __init__(self, game: GameInstance | None = None):
        """Initialize the server."""
        self.game = game or GameInstance()
        self.game.server_callback = self.game_message_callback

        # Connection tracking
        self.connections: Dict[str, ServerConnection] = {}  # session_id -> websocket

        logger.info("Game server initialized")

    async def game_message_callback(self, event: GameEvent) -> None:
        """Callback for GameInstance to send events through the server."""
        message = event.to_message()
        if event.recipient:
            websocket = self.connections.get(event.recipient)
            if websocket is not None and not await ConnectionUtils.send_message(websocket, message):
                self._forget(websocket)
            return

        disconnected = await ConnectionUtils.broadcast_to_connections(
            set(self.connections.values()), message)
        # The disconnect itself is queued by handle_client once its loop ends
        for websocket in disconnected:
            self._forget(websocket)

    def _forget(self, websocket: ServerConnection) -> Optional[str]:
        for session_id, ws in list(self.connections.items()):
            if ws is websocket:
                del self.connections[session_id]
                return session_id
        return None

    async def handle_client(self, websocket: ServerConnection) -> None:
        """Handle a new WebSocket client connection."""
        session_id = uuid.uuid4().hex[:8]
        logger.info(f"New connection from {websocket.remote_address} as {session_id}")

        self.connections[session_id] = websocket
        try:
            await self.game.submit("connect", session_id)
            async for message in websocket:
                await self.handle_message(session_id, websocket, message)
        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Connection closed: {websocket.remote_address}")
        except Exception as e:
            logger.error(f"Error handling client: {e}")
        finally:
            await self.cleanup_connection(session_id)

    async def handle_message(self, session_id: str, websocket: ServerConnection, message: Data) -> None:
        """Parse and route an incoming message."""
        try:
            data = json.loads(message)
            if not isinstance(data, dict):
                raise ValueError("message must be an object")
            message_type = data.get("type")

            if message_type == "set_player_info":
                await self.game.submit(BIND_IDENTITY, session_id,
                                       str(data.get("name", "")), str(data.get("color", "")))

            elif message_type == "select_start_node":
                # ids and amounts go through as sent; the engine rejects non-ints
                await self.game.submit(SELECT_START_NODE, session_id, data["node_id"])

            elif message_type == "send_troops":
                await self.game.submit(TRANSFER_TROOPS, session_id,
                                       data["from_node_id"], data["to_node_id"], data["amount"])

            else:
                await ConnectionUtils.send_error(websocket, f"Unknown message type: {message_type}")

        except json.JSONDecodeError:
            await ConnectionUtils.send_error(websocket, "Invalid JSON format")
        except (KeyError, TypeError, ValueError) as e:
            await ConnectionUtils.send_error(websocket, f"Invalid message: {e}")
        except Exception as e:
            logger.error(f"Error handling message: {e}")
            await ConnectionUtils.send_error(websocket, "Internal server error")

    async def cleanup_connection(self, session_id: str) -> None:
        """Clean up a disconnected client."""
        self.connections.pop(session_id, None)
        try:
            await self.game.submit("disconnect", session_id)
        except Exception as e:
            logger.error(f"Error cleaning up connection {session_id}: {e}")
        logger.info(f"Client disconnected: {session_id}")


async def run_server(host: str | None = None, port: int | None = None,
                     map_type: str | None = None, width: int | None = None, height: int | None = None,
                     config: EngineConfig | None = None) -> None:
    """Run the game server until cancelled."""
    # Use config defaults if not provided
    host = host or ServerConfig.HOST
    port = port or ServerConfig.PORT

    game = GameInstance(config=config, map_type=map_type, width=width, height=height)
    server = GameServer(game)

    logger.info(f"Starting game server on {host}:{port}")
    logger.info(f"Seats: {game.engine.config.seat_capacity}, "
                f"minimum transfer: {game.engine.config.min_transfer}, "
                f"tick: {game.engine.config.tick_period}s")

    game.start()
    websocket_server = await websockets.serve(server.handle_client, host, port)

    try:
        await websocket_server.serve_forever()
    finally:
        logger.info("Shutting down server...")
        websocket_server.close()
        await websocket_server.wait_closed()
        await game.stop()
        logger.info("Server shutdown complete")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Node War game server")
    parser.add_argument("--host", default=ServerConfig.HOST)
    parser.add_argument("--port", type=int, default=ServerConfig.PORT)
    parser.add_argument("--map", dest="map_type", choices=MapConfig.MAP_TYPES, default=GameDefaults.MAP_TYPE)
    parser.add_argument("--width", type=int, default=GameDefaults.GRID_WIDTH)
    parser.add_argument("--height", type=int, default=GameDefaults.GRID_HEIGHT)
    parser.add_argument("--seats", type=int, default=GameDefaults.SEAT_CAPACITY)
    parser.add_argument("--min-transfer", type=int, default=GameDefaults.MIN_TRANSFER)
    parser.add_argument("--tick", type=float, default=GameDefaults.TICK_PERIOD,
                        help="growth tick period in seconds")
    parser.add_argument("--growth", type=int, default=GameDefaults.GROWTH_PER_TICK)
    parser.add_argument("--initial-troops", type=int, default=GameDefaults.INITIAL_TROOPS)
    parser.add_argument("--log-level", default="INFO")
    return parser


def main(argv: List[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format=ServerConfig.LOG_FORMAT)

    config = EngineConfig(
        seat_capacity=args.seats,
        min_transfer=args.min_transfer,
        tick_period=args.tick,
        growth_per_tick=args.growth,
        initial_troops=args.initial_troops,
    )

    try:
        asyncio.run(run_server(args.host, args.port, args.map_type, args.width, args.height, config))
    except KeyboardInterrupt:
        logger.info("Server shutting down...")


if __name__ == "__main__":
    main()
