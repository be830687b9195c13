# -*- coding: utf-8 -*-
"""Error taxonomy for the scoring engine."""
from typing import Iterable, List


class CorridorError(Exception):
    """Base class for every error the engine surfaces."""


class ValidationError(CorridorError):
    """Weight profile rejected. ``errors`` holds every violation found."""

    def __init__(self, errors: Iterable[str]):
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors) or "invalid weight profile")


class ImmutableProfileError(CorridorError):
    """Attempt to overwrite or delete a preset profile."""

    def __init__(self, profile_name: str):
        self.profile_name = profile_name
        super().__init__(f"Preset profile '{profile_name}' cannot be modified or deleted")


class NotFoundError(CorridorError):
    """Referenced profile or station does not exist."""


class CollaboratorUnavailable(CorridorError):
    """An external data source failed. Never escapes a fallback site."""


class PersistenceError(CorridorError):
    """Repository failure. Fatal to the enclosing operation."""
