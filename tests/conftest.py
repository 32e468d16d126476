"""Shared fixtures: in-memory storage, a manual scheduler and an offline AI helper."""

import os

# must be set before the application modules read their configuration
os.environ["USE_IN_MEMORY"] = "true"
os.environ["HF_TOKEN"] = ""

from datetime import datetime, timezone

import numpy as np
import pytest
from fastapi.testclient import TestClient

from backend.lumina.database.mongodb import InMemoryDatasetRepository, get_repository
from backend.lumina.dependencies import get_ai_helper, get_simulator
from backend.lumina.main import app
from backend.lumina.utils.ai_helper import AIHelper
from backend.lumina.utils.data_loader import build_dataset
from backend.lumina.utils.streaming import ManualScheduler, StreamingSimulator


FROZEN_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def repository() -> InMemoryDatasetRepository:
    return InMemoryDatasetRepository()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def simulator(repository, scheduler) -> StreamingSimulator:
    """Simulator on a fake clock that never advances, with a seeded generator."""
    return StreamingSimulator(
        repository,
        scheduler,
        interval=1.5,
        volatility=0.1,
        rng=np.random.default_rng(42),
        clock=lambda: FROZEN_NOW,
    )


@pytest.fixture
def offline_helper() -> AIHelper:
    return AIHelper(api_token=None)


@pytest.fixture
def sales_dataset():
    """Eight rows of sensor-like data with a timestamp, two numeric and one text column."""
    header = ["timestamp", "temperature", "pressure", "city"]
    rows = [
        {"timestamp": f"2024-01-01T00:0{i}:00Z", "temperature": 20.0 + i, "pressure": 100.0 + 2 * i,
         "city": city}
        for i, city in enumerate(["New York", "Boston", "new york", "Chicago",
                                  "Boston", "Newark", "Chicago", "New York"])
    ]
    return build_dataset("sensors", header, rows)


@pytest.fixture
def client(repository, simulator, offline_helper):
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_simulator] = lambda: simulator
    app.dependency_overrides[get_ai_helper] = lambda: offline_helper
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    simulator.stop()
