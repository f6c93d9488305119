"""TeamVault Engine — errors, configuration, audit logging, resource locks."""

from teamvault.engine.errors import (  # noqa: F401
    AuthorizationError,
    ConfigError,
    InvalidStateError,
    IOFailure,
    NotFoundError,
    TeamVaultError,
    ValidationError,
)

__all__ = [
    "TeamVaultError",
    "NotFoundError",
    "AuthorizationError",
    "ValidationError",
    "InvalidStateError",
    "IOFailure",
    "ConfigError",
]
