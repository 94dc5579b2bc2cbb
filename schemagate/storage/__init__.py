# ==============================================
# STORAGE DRIVER ADAPTER
# ==============================================
#
# This package is the only code that talks to the document store.
#
# Modules:
# --------
# - base.py          → StorageDriver contract + Deadline
# - mongo_driver.py  → MongoDB (pymongo) driver
# - memory_driver.py → In-process driver (tests, local experiments)
#
# ==============================================

from schemagate.config import AppConfig

from .base import NATIVE_ID_FIELD, Deadline, Document, StorageDriver
from .memory_driver import MemoryDriver
from .mongo_driver import MongoDriver


def create_driver(config: AppConfig) -> StorageDriver:
    """Build the driver selected by ``config.storage.backend`` (not yet connected)."""
    if config.storage.backend == "memory":
        return MemoryDriver()
    return MongoDriver(
        host=config.mongo.host,
        port=config.mongo.port,
        user=config.mongo.user,
        password=config.mongo.password,
        uri=config.mongo.uri,
        server_selection_timeout_ms=config.mongo.server_selection_timeout_ms,
    )


__all__ = [
    "NATIVE_ID_FIELD",
    "Deadline",
    "Document",
    "StorageDriver",
    "MemoryDriver",
    "MongoDriver",
    "create_driver",
]
