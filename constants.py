import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# "memory" keeps nonces in-process, "redis" shares them through REDIS_HOST
NONCE_BACKEND = os.getenv("NONCE_BACKEND", "memory")

PRIMARY_ORIGIN = os.getenv("PRIMARY_ORIGIN", "http://localhost:8000")

# Audio limits
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", 10 * 1024 * 1024))  # 10MB
MAX_AUDIO_DURATION = float(os.getenv("MAX_AUDIO_DURATION", 60))  # seconds
TEMP_DIR = os.getenv("TEMP_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "temp"))
TEMP_FILE_MAX_AGE = int(os.getenv("TEMP_FILE_MAX_AGE", 24 * 60 * 60))

# Rooms
ROOM_CODE_MAX_ATTEMPTS = int(os.getenv("ROOM_CODE_MAX_ATTEMPTS", 10))
MAX_ROOM_MEMBERS = int(os.getenv("MAX_ROOM_MEMBERS", 0))  # 0 = unlimited
PENDING_ROOM_TTL = int(os.getenv("PENDING_ROOM_TTL", 600))

# Verification
APP_INITIAL_SHARED_KEY = os.getenv("APP_INITIAL_SHARED_KEY", "")
APP_SHARED_SECRET = os.getenv("APP_SHARED_SECRET", "")
WEB_VERIFICATION_SECRET = os.getenv("WEB_VERIFICATION_SECRET", "")
VERIFICATION_WINDOW_SECONDS = int(os.getenv("VERIFICATION_WINDOW_SECONDS", 5 * 60))
NONCE_RETENTION_SECONDS = int(os.getenv("NONCE_RETENTION_SECONDS", 24 * 60 * 60))

# OpenAI
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", None)
TRANSCRIPTION_MODEL = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
TRANSLATION_MODEL = os.getenv("TRANSLATION_MODEL", "gpt-4o-mini")
TTS_MODEL = os.getenv("TTS_MODEL", "tts-1")

HOUSEKEEPING_INTERVAL = int(os.getenv("HOUSEKEEPING_INTERVAL", 60 * 60))
