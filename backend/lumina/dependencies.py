"""
Application-wide services handed to the routes through FastAPI dependencies.
"""
from . import config
from .database.mongodb import DatasetRepository, datasets_repository, get_repository
from .utils.ai_helper import AIHelper
from .utils.streaming import StreamingSimulator

ai_helper = AIHelper(api_token=config.HF_TOKEN)

simulator = StreamingSimulator(
    datasets_repository,
    interval=config.STREAM_INTERVAL_SECONDS,
    volatility=config.STREAM_VOLATILITY,
    timestamp_column=config.STREAM_TIMESTAMP_COLUMN
)


def get_simulator() -> StreamingSimulator:
    return simulator


def get_ai_helper() -> AIHelper:
    return ai_helper


__all__ = ["DatasetRepository", "get_repository", "get_simulator", "get_ai_helper", "simulator", "ai_helper"]
