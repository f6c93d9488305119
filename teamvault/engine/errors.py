"""
TeamVault Error Hierarchy — Structured exceptions raised by the storage engine.

Every error carries a human-readable message plus a serializable context so
the request layer can log it and map it to a response without inspecting
the message text.

Hierarchy:
    TeamVaultError
    ├── NotFoundError       — Referenced user/team/folder/file/version missing
    ├── AuthorizationError  — Permission evaluator denied the operation
    ├── ValidationError     — Malformed input (ambiguous destination, self-move)
    ├── InvalidStateError   — Operation invalid for the entity's current state
    ├── IOFailure           — Physical blob read/write/delete failed
    └── ConfigError         — Invalid teamvault.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class TeamVaultError(Exception):
    """
    Base error for all TeamVault engine failures.
    All context is serializable to JSON.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.object_ref: Optional[str] = context.get("object_ref")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "object_ref": self.object_ref,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k != "object_ref"
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.object_ref:
            parts.append(f"object_ref={self.object_ref}")
        return " | ".join(parts)


class NotFoundError(TeamVaultError):
    """Referenced user, team, folder, file, version or member does not exist."""
    pass


class AuthorizationError(TeamVaultError):
    """
    Access denied by the permission evaluator.
    Includes the acting username and the capability that was required.
    """

    def __init__(self, message: str, **context: Any):
        self.username: Optional[str] = context.get("username")
        self.required_capability: Optional[str] = context.get("required_capability")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["username"] = self.username
        d["required_capability"] = self.required_capability
        return d


class ValidationError(TeamVaultError):
    """
    Malformed input: ambiguous or missing destination, self-move,
    password mismatch, unparseable item key.
    """

    def __init__(self, message: str, **context: Any):
        self.field: Optional[str] = context.get("field")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        return d


class InvalidStateError(TeamVaultError):
    """Operation not valid for the current entity state (e.g. leader leaving)."""
    pass


class IOFailure(TeamVaultError):
    """Physical storage read/write/delete failed or an expected blob is missing."""

    def __init__(self, message: str, **context: Any):
        self.address: Optional[str] = context.get("address")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["address"] = self.address
        return d


class ConfigError(TeamVaultError):
    """Configuration error — invalid teamvault.yaml."""
    pass
