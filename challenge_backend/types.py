"""
Result types shared by the service layer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import List


@dataclass
class FieldError:
    """A problem (or notice) tied to one input field, with a readable message."""

    field: str
    message: str

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class Messages:
    """Success and error notices returned by side-effecting operations."""

    success: List[FieldError] = field(default_factory=list)
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
