"""Data transfer objects for the application layer."""

from keycustody.application.dto.base import BaseDTO
from keycustody.application.dto.key_dto import EnsureKeyDTO, KeyRecordDTO, VerificationDTO

__all__ = [
    "BaseDTO",
    "EnsureKeyDTO",
    "KeyRecordDTO",
    "VerificationDTO",
]
