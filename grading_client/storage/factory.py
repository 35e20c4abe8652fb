from pathlib import Path

from grading_client.config.settings import Settings
from grading_client.database.connection import init_pool
from grading_client.storage.base import BaseStorage
from grading_client.storage.file_adapter import FileStorage
from grading_client.storage.memory_adapter import MemoryStorage
from grading_client.storage.postgres_adapter import PostgresStorage


class StorageFactory:
    """Creates the persistent client store selected in settings."""

    ENGINES = ("file", "memory", "postgres")

    @classmethod
    def create(cls, settings: Settings) -> BaseStorage:
        engine = settings.storage_engine.lower()
        if engine == "file":
            return FileStorage(Path(settings.storage_file_path).expanduser())
        if engine == "memory":
            return MemoryStorage()
        if engine == "postgres":
            init_pool(settings)
            storage = PostgresStorage(table=settings.storage_table)
            storage.ensure_schema()
            return storage
        raise ValueError(
            f"Unknown storage engine '{engine}'. Choose from: {list(cls.ENGINES)}"
        )
