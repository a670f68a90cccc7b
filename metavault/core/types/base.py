"""Base model classes shared by the MetaVault domain types."""

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BaseValidatedModel(BaseModel):
    """Base model with validation on assignment and JSON helpers.

    Provides common functionality for domain records:
    - Automatic creation timestamp
    - JSON round-trip helpers
    """

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(
        validate_assignment=True,
        arbitrary_types_allowed=True,
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to a JSON-compatible dictionary."""
        return json.loads(self.model_dump_json())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BaseValidatedModel":
        """Create model instance from dictionary."""
        return cls.model_validate(data)


class FrozenModel(BaseModel):
    """Immutable result object returned by views and sweeps."""

    model_config = ConfigDict(frozen=True)
