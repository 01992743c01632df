"""
Ledger Data Models

These models define the on-disk snapshot and the per-user record.

SNAPSHOT LAYOUT (JSON, camelCase keys):
{
  "users": {
    "<userId>": {"name": ..., "total": ..., "days": {"YYYY-MM-DD": n}, "updatedAt": ...}
  },
  "createdAt": ...,
  "updatedAt": ...,
  "schemaVersion": 2
}

DESIGN DECISION: The models validate SHAPE (types, non-negative counts,
canonical day keys). They do not enforce total == sum(days); that is
the Ledger's job on every mutation, and the store reconciles it
visibly on load.
"""

from datetime import datetime
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from stairbot.dates import is_valid_key, utc_now


# Version 0 (or missing): totals only, no per-day history
# Version 2: per-day history in "days"
SCHEMA_VERSION = 2


class UserRecord(BaseModel):
    """
    One person's name, running total and per-day history.

    ``id`` is the key of the record in the snapshot's ``users`` map,
    so it is not repeated inside the serialized record.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(
        default="",
        exclude=True,
        description="Opaque external user identifier"
    )
    name: str = Field(
        default="",
        description="Display name chosen at registration"
    )
    total: NonNegativeInt = Field(
        default=0,
        description="Sum of all day values"
    )
    days: dict[str, NonNegativeInt] = Field(
        default_factory=dict,
        description="Stairs per calendar day (YYYY-MM-DD)"
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        description="Last mutation of this record"
    )

    @field_validator("days")
    @classmethod
    def validate_day_keys(cls, v: dict[str, int]) -> dict[str, int]:
        """Only canonical calendar day keys are allowed."""
        bad = [key for key in v if not is_valid_key(key)]
        if bad:
            raise ValueError(f"Invalid day keys: {bad}")
        return v

    def days_total(self) -> int:
        return sum(self.days.values())

    def sorted_days(self) -> list[tuple[str, int]]:
        """Day entries in chronological order."""
        return sorted(self.days.items())


class LedgerSnapshot(BaseModel):
    """Full serialized state of the ledger at one point in time."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    users: dict[str, UserRecord] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    schema_version: int = Field(
        default=SCHEMA_VERSION,
        ge=0,
        description="Snapshot layout version"
    )

    @model_validator(mode="after")
    def attach_user_ids(self) -> "LedgerSnapshot":
        """Copy each map key into its record's ``id``."""
        for user_id, record in self.users.items():
            record.id = user_id
        return self

    def to_json_dict(self) -> dict:
        """Plain dict in the on-disk layout (camelCase, ISO timestamps)."""
        return self.model_dump(mode="json", by_alias=True)
