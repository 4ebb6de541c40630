"""Translation of Supabase/PostgREST failures into engine errors."""

import httpx
from postgrest.exceptions import APIError

from plan_engine.domain.errors import NetworkError, PlanEngineError, ValidationError

_SERVER_ERROR_MIN = 500

# Postgres error classes for connection loss, exhausted resources and
# operator intervention; PGRST000-003 are PostgREST's own connection errors.
_TRANSIENT_SQLSTATE_CLASSES = ("08", "53", "57", "58")
_TRANSIENT_POSTGREST_CODES = {"PGRST000", "PGRST001", "PGRST002", "PGRST003"}


def is_transient(error: APIError) -> bool:
    """Return True when a PostgREST error is worth retrying."""
    code = str(error.code or "")
    if code.isdigit() and len(code) == 3:
        return int(code) >= _SERVER_ERROR_MIN
    if code in _TRANSIENT_POSTGREST_CODES:
        return True
    return code[:2] in _TRANSIENT_SQLSTATE_CLASSES


def translate_error(exc: Exception, action: str) -> PlanEngineError:
    """Map a transport or PostgREST failure onto the engine's error types."""
    if isinstance(exc, httpx.HTTPError):
        return NetworkError(f"Failed to {action}: {exc}")
    if isinstance(exc, APIError):
        if is_transient(exc):
            return NetworkError(f"Failed to {action} ({exc.code}): {exc.message}")
        return ValidationError(f"Rejected {action} ({exc.code}): {exc.message}")
    raise TypeError(f"Unexpected error type {type(exc).__name__}") from exc
