import os


# ===== SERVER CONFIGURATION =====
class ServerConfig:
    """WebSocket server configuration."""
    HOST = os.environ.get("NODEWAR_HOST", "localhost")
    PORT = int(os.environ.get("NODEWAR_PORT", "8765"))

    LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

    # Seconds a single outbound send may take before the client is dropped
    SEND_TIMEOUT = 5.0


# ===== GAME DEFAULTS =====
class GameDefaults:
    """Default settings for new games."""

    # Seats
    SEAT_CAPACITY = 2

    # Troop movement
    MIN_TRANSFER = 10

    # Growth timing
    TICK_PERIOD = 1.0  # seconds
    GROWTH_PER_TICK = 1

    # Troops placed on a freshly claimed start node
    INITIAL_TROOPS = 1

    # Display names are cut to this length
    MAX_NAME_LENGTH = 24

    # Map generation
    MAP_TYPE = "hub"  # "hub", "grid" or "hex"
    GRID_WIDTH = 3
    GRID_HEIGHT = 3


# ===== MAP GENERATION =====
class MapConfig:
    """Map generation settings and limits."""

    MAP_TYPES = ["hub", "grid", "hex"]

    # Size limits
    MIN_WIDTH = 2
    MAX_WIDTH = 20
    MIN_HEIGHT = 2
    MAX_HEIGHT = 20
