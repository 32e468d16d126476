"""
Dataset repository backed by MongoDB, with an in-memory fallback.
"""
from pymongo import MongoClient, ASCENDING
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .. import config
from ..models.models import Dataset

logger = logging.getLogger(__name__)


class DatasetRepository(ABC):
    """Storage for datasets keyed by id with upsert semantics."""

    def connect(self) -> None:
        pass

    def close(self) -> None:
        pass

    @abstractmethod
    def upsert(self, dataset: Dataset) -> None:
        """Replace the dataset with the same id, or append it if absent."""

    @abstractmethod
    def list(self) -> List[Dataset]:
        """All datasets in insertion order."""

    @abstractmethod
    def get(self, dataset_id: str) -> Optional[Dataset]:
        ...

    @abstractmethod
    def delete(self, dataset_id: str) -> bool:
        """Remove a dataset. Returns False if it did not exist."""


class InMemoryDatasetRepository(DatasetRepository):
    """
    Process-local storage. ``get`` returns the stored object itself, so row
    updates made by the stream simulator are seen by every reader.
    """

    def __init__(self):
        self._datasets: Dict[str, Dataset] = {}
        self._lock = threading.Lock()

    def connect(self) -> None:
        logger.info("In-memory dataset repository ready")

    def close(self) -> None:
        logger.info("In-memory dataset repository closed")

    def upsert(self, dataset: Dataset) -> None:
        with self._lock:
            self._datasets[dataset.id] = dataset

    def list(self) -> List[Dataset]:
        with self._lock:
            return list(self._datasets.values())

    def get(self, dataset_id: str) -> Optional[Dataset]:
        with self._lock:
            return self._datasets.get(dataset_id)

    def delete(self, dataset_id: str) -> bool:
        with self._lock:
            return self._datasets.pop(dataset_id, None) is not None


class MongoDatasetRepository(DatasetRepository):
    """Datasets stored as one document each, ``_id`` being the dataset id."""

    def __init__(self, client: MongoClient, database_name: str):
        self.client = client
        self.collection = client[database_name]["datasets"]

    def connect(self) -> None:
        self.collection.create_index([("createdAt", ASCENDING)])
        logger.info("MongoDB already connected")

    def close(self) -> None:
        self.client.close()
        logger.info("MongoDB connection closed")

    @staticmethod
    def _to_document(dataset: Dataset) -> dict:
        document = dataset.model_dump(by_alias=True)
        document["_id"] = document.pop("id")
        return document

    @staticmethod
    def _from_document(document: dict) -> Dataset:
        document = dict(document)
        document["id"] = str(document.pop("_id"))
        return Dataset.model_validate(document)

    def upsert(self, dataset: Dataset) -> None:
        document = self._to_document(dataset)
        self.collection.replace_one({"_id": document["_id"]}, document, upsert=True)

    def list(self) -> List[Dataset]:
        return [self._from_document(doc) for doc in self.collection.find().sort("createdAt", ASCENDING)]

    def get(self, dataset_id: str) -> Optional[Dataset]:
        document = self.collection.find_one({"_id": dataset_id})
        return self._from_document(document) if document else None

    def delete(self, dataset_id: str) -> bool:
        return self.collection.delete_one({"_id": dataset_id}).deleted_count > 0


def create_repository() -> DatasetRepository:
    """Pick MongoDB or in-memory storage from configuration."""
    if config.USE_IN_MEMORY:
        logger.info("Using in-memory database (MongoDB connection disabled)")
        return InMemoryDatasetRepository()

    try:
        logger.info(f"Connecting to MongoDB at {config.MONGODB_URI}")
        client = MongoClient(
            config.MONGODB_URI,
            serverSelectionTimeoutMS=config.SERVER_SELECTION_TIMEOUT_MS,
            maxPoolSize=config.MAX_POOL_SIZE,
            minPoolSize=config.MIN_POOL_SIZE,
            maxIdleTimeMS=config.MAX_IDLE_TIME_MS
        )

        # Verify connection
        client.admin.command('ping')

        logger.info(
            f"Connected to MongoDB successfully with connection pool "
            f"(min={config.MIN_POOL_SIZE}, max={config.MAX_POOL_SIZE})"
        )
        return MongoDatasetRepository(client, config.DATABASE_NAME)
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {str(e)}")
        logger.info("Falling back to in-memory database")
        return InMemoryDatasetRepository()


datasets_repository = create_repository()


def get_repository() -> DatasetRepository:
    """FastAPI dependency returning the application's repository."""
    return datasets_repository
