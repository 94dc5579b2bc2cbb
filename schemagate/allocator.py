# ==============================================
# DatabaseAllocator
# ==============================================
#
# PURPOSE:
#   Create / register logical database scopes and resolve
#   database names used by later requests to their handles.
#
# CLASS: DatabaseAllocator
# ------------------------
#   Constructor:
#   ------------
#   - __init__(driver, registry, config: AllocatorConfig)
#
#   Methods:
#   --------
#   - allocate(requested_name=None, deadline=None) -> DatabaseHandle
#       Empty name → generated "<prefix>_<UTC yyyymmddHHMMSS>_<nnnn>".
#       Existing name → existing handle (DuplicateName instead when
#       reject_duplicates is configured).
#
#   - resolve(name, deadline=None) -> DatabaseHandle
#       Registry hit, else discover the database in the store
#       (rebuilds the registry after a restart), else
#       DatabaseNotFound.
#
#   - list_databases() -> list[DatabaseHandle]
#
#   - validate_name(name) -> None   (classmethod)
#   - validate_collection_name(name) -> None   (classmethod)
#       MongoDB naming rules; raise InvalidName.
#
# ==============================================

import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional

from schemagate.config import AllocatorConfig
from schemagate.errors import DatabaseNotFound, DuplicateName, InvalidName, translate_storage_errors
from schemagate.models import DatabaseHandle
from schemagate.registry import Registry
from schemagate.storage import Deadline, StorageDriver

logger = logging.getLogger(__name__)


class DatabaseAllocator:
    RESERVED_NAMES = {"admin", "local", "config"}
    FORBIDDEN_CHARS = set('/\\. "$*<>:|?\0')
    MAX_NAME_BYTES = 63

    def __init__(self, driver: StorageDriver, registry: Registry, config: Optional[AllocatorConfig] = None):
        self.driver = driver
        self.registry = registry
        self.config = config or AllocatorConfig()
        self._counter = itertools.count(1)
        self._counter_lock = threading.Lock()

    @classmethod
    def validate_name(cls, name: str) -> None:
        """
        Raise InvalidName unless ``name`` is usable as a database name.

        Args:
            name: Candidate database name
        """
        if not isinstance(name, str) or not name:
            raise InvalidName("database name must be a non-empty string")
        if len(name.encode("utf-8")) > cls.MAX_NAME_BYTES:
            raise InvalidName(f"database name must be at most {cls.MAX_NAME_BYTES} bytes")
        bad = sorted(set(name) & cls.FORBIDDEN_CHARS)
        if bad:
            shown = ", ".join(repr(ch) for ch in bad)
            raise InvalidName(f"database name contains forbidden characters: {shown}")
        if name.lower() in cls.RESERVED_NAMES:
            raise InvalidName(f"database name '{name}' is reserved")

    @classmethod
    def validate_collection_name(cls, name: str) -> None:
        """Raise InvalidName unless ``name`` is usable as a collection name."""
        if not isinstance(name, str) or not name:
            raise InvalidName("collection name must be a non-empty string")
        if "$" in name or "\0" in name:
            raise InvalidName("collection name must not contain '$' or NUL")
        if name.startswith("system."):
            raise InvalidName("collection names starting with 'system.' are reserved")

    def _generate_name(self) -> str:
        while True:
            with self._counter_lock:
                sequence = next(self._counter)
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
            name = f"{self.config.name_prefix}_{stamp}_{sequence:04d}"
            if self.registry.get_database(name) is None:
                return name

    def allocate(self, requested_name: Optional[str] = None, deadline: Optional[Deadline] = None) -> DatabaseHandle:
        """
        Create or select a database and register its handle.

        Args:
            requested_name: Caller-chosen name; None or "" to generate one
            deadline: Bound on the store call

        Returns:
            The registered DatabaseHandle (the existing one for a known name).
        """
        deadline = deadline or Deadline.none()
        name = requested_name or self._generate_name()
        self.validate_name(name)

        existing = self.registry.get_database(name)
        if existing is not None:
            if self.config.reject_duplicates:
                raise DuplicateName(f"database '{name}' is already allocated")
            logger.info("Database '%s' already allocated; returning existing handle", name)
            return existing

        with translate_storage_errors(f"allocate database '{name}'", deadline):
            self.driver.create_database(name, deadline)

        handle, created = self.registry.register_database(DatabaseHandle(name=name))
        if not created and self.config.reject_duplicates:
            # Lost a race with a concurrent allocation of the same name
            raise DuplicateName(f"database '{name}' is already allocated")
        return handle

    def resolve(self, name: str, deadline: Optional[Deadline] = None) -> DatabaseHandle:
        """Return the handle for ``name``, discovering it in the store if needed."""
        self.validate_name(name)
        handle = self.registry.get_database(name)
        if handle is not None:
            return handle

        deadline = deadline or Deadline.none()
        with translate_storage_errors(f"look up database '{name}'", deadline):
            exists = self.driver.database_exists(name, deadline)
        if not exists:
            raise DatabaseNotFound(f"database '{name}' is not allocated")

        handle, _ = self.registry.register_database(DatabaseHandle(name=name, origin="discovered"))
        return handle

    def list_databases(self) -> List[DatabaseHandle]:
        return self.registry.list_databases()
