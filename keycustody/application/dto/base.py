"""Base DTO classes for the application layer."""

from abc import ABC
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass
class BaseDTO(ABC):
    """Abstract base class for DTOs with common functionality."""

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))
