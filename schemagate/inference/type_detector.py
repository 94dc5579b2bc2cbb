from datetime import date, datetime
from typing import Any, List, Optional

from bson import Decimal128

from schemagate.models import TypeTag


class TypeDetector:
    DATETIME_FORMATS = [
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S.%fZ",
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%dT%H:%M:%S.%f",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d",
    ]

    def __init__(self, detect_string_timestamps: bool = True):
        self.detect_string_timestamps = detect_string_timestamps

    def detect(self, value: Any) -> TypeTag:
        if value is None:
            return TypeTag.NULL

        if isinstance(value, bool):
            return TypeTag.BOOLEAN

        if isinstance(value, int):
            return TypeTag.INTEGER

        if isinstance(value, (float, Decimal128)):
            return TypeTag.FLOAT

        if isinstance(value, (datetime, date)):
            return TypeTag.TIMESTAMP

        if isinstance(value, (list, tuple)):
            return TypeTag.ARRAY

        if isinstance(value, dict):
            return TypeTag.OBJECT

        if isinstance(value, str):
            if self.detect_string_timestamps and self.is_timestamp_string(value):
                return TypeTag.TIMESTAMP
            return TypeTag.STRING

        # ObjectId, bytes, anything else the store hands back
        return TypeTag.STRING

    def element_type(self, values: List[Any]) -> TypeTag:
        """Type of the first non-null element; UNKNOWN for empty/all-null arrays."""
        for item in values:
            if item is not None:
                return self.detect(item)
        return TypeTag.UNKNOWN

    @classmethod
    def is_timestamp_string(cls, value: str) -> bool:
        return cls._parse_datetime(value.strip()) is not None

    @classmethod
    def _parse_datetime(cls, value: str) -> Optional[datetime]:
        # Cheap reject before trying every format
        if len(value) < 10 or value[4:5] != "-":
            return None
        for fmt in cls.DATETIME_FORMATS:
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
        return None
