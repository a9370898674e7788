"""Roster persistence: one JSON blob in a named slot."""

from wavelink_roster.persistence.gateway import (
    ROSTER_SCHEMA,
    PersistenceDecodeError,
    PersistenceGateway,
)

__all__ = ["ROSTER_SCHEMA", "PersistenceDecodeError", "PersistenceGateway"]
