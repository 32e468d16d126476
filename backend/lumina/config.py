"""
Application configuration read from the environment.
"""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Storage
MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "lumina_db")
USE_IN_MEMORY = os.getenv("USE_IN_MEMORY", "false").lower() == "true"

# Connection pool settings
MAX_POOL_SIZE = int(os.getenv("MONGODB_MAX_POOL_SIZE", "100"))
MIN_POOL_SIZE = int(os.getenv("MONGODB_MIN_POOL_SIZE", "10"))
MAX_IDLE_TIME_MS = int(os.getenv("MONGODB_MAX_IDLE_TIME_MS", "60000"))  # 1 minute
SERVER_SELECTION_TIMEOUT_MS = int(os.getenv("MONGODB_TIMEOUT_MS", "5000"))

# Live stream simulation
STREAM_INTERVAL_SECONDS = float(os.getenv("STREAM_INTERVAL_SECONDS", "1.5"))
STREAM_VOLATILITY = float(os.getenv("STREAM_VOLATILITY", "0.1"))
STREAM_TIMESTAMP_COLUMN = os.getenv("STREAM_TIMESTAMP_COLUMN", "timestamp")

# Reasoning service (no token means offline answers)
HF_TOKEN = os.getenv("HF_TOKEN")
REASONING_MODEL = os.getenv("REASONING_MODEL", "google/flan-t5-base")
REASONING_API_URL = os.getenv("REASONING_API_URL", "https://api-inference.huggingface.co/models/")
REASONING_TIMEOUT_SECONDS = float(os.getenv("REASONING_TIMEOUT_SECONDS", "30"))
CHAT_SAMPLE_ROWS = int(os.getenv("CHAT_SAMPLE_ROWS", "20"))
INSIGHT_SAMPLE_ROWS = int(os.getenv("INSIGHT_SAMPLE_ROWS", "30"))
CHAT_HISTORY_TURNS = int(os.getenv("CHAT_HISTORY_TURNS", "6"))

DEFAULT_HISTOGRAM_BINS = int(os.getenv("DEFAULT_HISTOGRAM_BINS", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
