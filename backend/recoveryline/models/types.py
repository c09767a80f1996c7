"""Portable column types shared by the models.

PostgreSQL gets JSONB and native enums; SQLite (used in tests) falls back to
JSON text and CHECK-constrained varchars.
"""

import enum

from sqlalchemy import JSON, Enum
from sqlalchemy.dialects.postgresql import JSONB

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


def enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Build an Enum column type that stores member values, not names."""
    return Enum(
        enum_cls,
        name=name,
        create_constraint=True,
        values_callable=lambda members: [m.value for m in members],
    )
