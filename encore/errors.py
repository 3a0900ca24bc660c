"""
encore.errors — Engine error taxonomy
======================================

Services raise these synchronously; the API layer maps them to HTTP
status codes in :mod:`encore.api.main`.
"""

from __future__ import annotations


class EncoreError(Exception):
    """Base class for every failure surfaced by the engine."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(EncoreError):
    """Target, quest, lounge or user does not exist (or was removed)."""

    status_code = 404


class ForbiddenError(EncoreError):
    """Actor lacks the ownership / manager / admin role for the operation."""

    status_code = 403


class ConflictError(EncoreError):
    """Concurrent modification that could not be reconciled.

    Votes, badges and scores are collision-free by construction, so the
    engine does not raise this in steady state.
    """

    status_code = 409


class ValidationError(EncoreError):
    """Malformed input rejected at creation time."""

    status_code = 422
