"""
TeamVault Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import uuid
from typing import Callable

import pytest

from teamvault.documents.models import MemberInfo, TeamInfo, UserInfo
from teamvault.engine.config import (
    DatabaseConfig,
    LoggingConfig,
    SecurityConfig,
    StorageConfig,
    VaultConfig,
)
from teamvault.vault import Vault

PASSWORD = "secret-pw"


# ---------------------------------------------------------------------------
# Environment setup: every test gets its own SQLite file and storage root
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config():
    """Reset the global config singleton between tests."""
    import teamvault.engine.config as cfg_mod

    cfg_mod._config = None
    yield
    cfg_mod._config = None


@pytest.fixture
def vault_config(tmp_path) -> VaultConfig:
    return VaultConfig(
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'meta' / 'vault.db'}"),
        storage=StorageConfig(root=str(tmp_path / "storage")),
        logging=LoggingConfig(directory=str(tmp_path / "logs")),
        security=SecurityConfig(bcrypt_rounds=4),
    )


@pytest.fixture
def vault(vault_config):
    """A started Vault with synchronous audit logging."""
    v = Vault(vault_config, engine_name=f"test-{uuid.uuid4().hex}", async_logging=False)
    v.startup()
    yield v
    v.shutdown()


@pytest.fixture
def make_user(vault) -> Callable[..., UserInfo]:
    def _make(username: str, **kwargs) -> UserInfo:
        return vault.accounts.signup(username, PASSWORD, PASSWORD, **kwargs)
    return _make


@pytest.fixture
def alice(make_user) -> UserInfo:
    return make_user("alice", name="Alice")


@pytest.fixture
def bob(make_user) -> UserInfo:
    return make_user("bob", name="Bob")


@pytest.fixture
def carol(make_user) -> UserInfo:
    return make_user("carol", name="Carol")


@pytest.fixture
def team(vault, alice) -> TeamInfo:
    """A team led by alice."""
    return vault.teams.create_team("alice", "Research")


@pytest.fixture
def join_team(vault) -> Callable[..., MemberInfo]:
    """Invite ``username`` as ``inviter`` and accept; returns the new member row."""
    def _join(team_id: int, username: str, inviter: str = "alice") -> MemberInfo:
        invitation = vault.teams.invite_member(team_id, inviter, username)
        vault.invitations.accept_invitation(invitation.id, username)
        members = vault.teams.list_members(team_id, username)
        return next(m for m in members if m.username == username)
    return _join


@pytest.fixture
def personal_root(vault) -> Callable[[str], int]:
    def _root(username: str) -> int:
        return vault.folders.get_root_items(username)[0].id
    return _root
