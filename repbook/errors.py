from __future__ import annotations

from typing import Any, Dict, Optional

# PostgREST: a single row was requested and none (or several) matched.
NOT_FOUND_CODE = "PGRST116"
# Postgres unique_violation, passed through by PostgREST.
CONFLICT_CODE = "23505"
TRANSPORT_CODE = "transport"
NO_IDENTITY_CODE = "no_identity"


class RepbookError(Exception):
    pass


class ValidationError(RepbookError):
    """Input rejected before any remote call was made."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class DuplicateExerciseError(ValidationError):
    def __init__(self, name: str) -> None:
        super().__init__("name", f"an exercise named {name!r} already exists")
        self.name = name


class StoreError(RepbookError):
    """A remote store call failed; ``code`` is machine readable."""

    def __init__(self, code: str, message: str, status: Optional[int] = None, details: Any = None) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.status = status
        self.details = details

    @property
    def is_not_found(self) -> bool:
        return self.code == NOT_FOUND_CODE

    @property
    def is_conflict(self) -> bool:
        return self.code == CONFLICT_CODE or self.status == 409

    @classmethod
    def from_payload(cls, status: int, payload: Dict[str, Any] | None) -> "StoreError":
        payload = payload or {}
        code = str(payload.get("code") or payload.get("error_code") or payload.get("error") or f"http_{status}")
        message = str(
            payload.get("message")
            or payload.get("msg")
            or payload.get("error_description")
            or payload.get("error")
            or "request failed"
        )
        return cls(code, message, status=status, details=payload.get("details"))


class AuthError(StoreError):
    pass
