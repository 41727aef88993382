import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")
    TESTING = False

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Socket.IO: empty means pick eventlet or threading for the platform
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Game defaults for new rooms
    PLAYBACK_DURATION_SEC = int(os.environ.get("PLAYBACK_DURATION_SEC", "30"))
    TOTAL_ROUNDS = int(os.environ.get("TOTAL_ROUNDS", "3"))
    MAX_PLAYERS = int(os.environ.get("MAX_PLAYERS", "8"))
    REVEAL_SONGS = os.environ.get("REVEAL_SONGS", "0") == "1"

    # Relay
    ROOM_EMPTY_TTL_SEC = int(os.environ.get("ROOM_EMPTY_TTL_SEC", "10"))
    ROOM_SWEEPER_ENABLED = os.environ.get("ROOM_SWEEPER_ENABLED", "1") == "1"

    # Video search
    YOUTUBE_API_KEY = os.environ.get("YOUTUBE_API_KEY", "")
    YOUTUBE_MAX_RESULTS = int(os.environ.get("YOUTUBE_MAX_RESULTS", "12"))
    SEARCH_TIMEOUT_SEC = float(os.environ.get("SEARCH_TIMEOUT_SEC", "10"))
