import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Socket.IO ("eventlet", "threading", ...); empty picks a default
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    # Game
    TURN_TIMEOUT_SEC = int(os.environ.get("TURN_TIMEOUT_SEC", "60"))
    MAX_QUESTIONS = int(os.environ.get("MAX_QUESTIONS", "20"))
    GUESS_ATTEMPTS = int(os.environ.get("GUESS_ATTEMPTS", "2"))
    MAX_TIMEOUTS = int(os.environ.get("MAX_TIMEOUTS", "3"))
    DONT_KNOW_ANSWER = os.environ.get("DONT_KNOW_ANSWER", "Non so")

    # "teardown" or "rotate"
    THINKER_EXIT_POLICY = os.environ.get("THINKER_EXIT_POLICY", "teardown")
    # "append" or "next_round"
    LATE_JOIN_POLICY = os.environ.get("LATE_JOIN_POLICY", "append")
    ROTATE_THINKER = os.environ.get("ROTATE_THINKER", "0") == "1"

    # Input limits
    MAX_NAME_LENGTH = int(os.environ.get("MAX_NAME_LENGTH", "24"))
    MAX_TEXT_LENGTH = int(os.environ.get("MAX_TEXT_LENGTH", "200"))
