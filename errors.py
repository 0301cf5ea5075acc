"""
Error kinds surfaced by the workflow engine.

Each carries the HTTP status the API layer answers with.
"""
from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base exception for all engine errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(EngineError):
    """Target document absent, or an update matched nothing.

    A document already in a terminal state is indistinguishable from a
    missing one and is reported the same way.
    """

    status_code = 404


class Conflict(EngineError):
    """A uniqueness invariant would be violated."""

    status_code = 409


class InvalidInput(EngineError):
    """Missing required field, bad id, or unrecognized token."""

    status_code = 400


class DependencyFailure(EngineError):
    """The entity store itself failed."""

    status_code = 503
