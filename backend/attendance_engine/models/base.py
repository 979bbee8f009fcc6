"""Base model class with common functionality."""
from dataclasses import fields, is_dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict


def serialize_value(value: Any) -> Any:
    """Convert a model attribute into a JSON-friendly value."""
    if isinstance(value, BaseModel):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime('%H:%M')
    if isinstance(value, dict):
        return {serialize_value(k) if isinstance(k, Enum) else str(k): serialize_value(v)
                for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [serialize_value(v) for v in value]
    if isinstance(value, bytes):
        return None
    return value


class BaseModel:
    """Mixin for dataclass models: dictionary conversion."""

    def to_dict(self, exclude: list = None) -> Dict[str, Any]:
        """Convert instance to dictionary."""
        exclude = exclude or []
        result = {}

        if not is_dataclass(self):
            return result

        for field in fields(self):
            key = field.name
            if key not in exclude:
                result[key] = serialize_value(getattr(self, key))

        return result
