"""
TeamVault Runtime — wires configuration, database, blob store and services.

Lifecycle:
    vault = Vault(load_config())
    vault.startup()    # engine, tables, storage dirs, audit log
    vault.files.upload_file(...)
    vault.shutdown()   # flush audit queue, dispose engine
"""

from __future__ import annotations

import logging
from typing import Optional

from teamvault.accounts import AccountService
from teamvault.db.session import DEFAULT_ENGINE_NAME, close_all_sessions, init_db
from teamvault.documents.folders import FolderService
from teamvault.documents.lifecycle import TrashManager
from teamvault.documents.service import FileService
from teamvault.documents.signatures import SignatureStore
from teamvault.engine.config import VaultConfig, get_config
from teamvault.engine.locks import LockRegistry
from teamvault.engine.logging import AsyncLogQueue, AuditTrail, FileLogger, log_system_event
from teamvault.security.permissions import PermissionEvaluator
from teamvault.storage.blobs import BlobStore
from teamvault.teams.invitations import DatabaseNotificationSink, InvitationService, NotificationSink
from teamvault.teams.presence import PresenceRegistry
from teamvault.teams.service import TeamService

logger = logging.getLogger("teamvault.vault")


class Vault:
    """Holds one configured instance of every TeamVault service."""

    def __init__(
        self,
        config: Optional[VaultConfig] = None,
        engine_name: str = DEFAULT_ENGINE_NAME,
        async_logging: bool = True,
        sink: Optional[NotificationSink] = None,
    ):
        self.config = config or get_config()
        self._engine_name = engine_name
        self._async_logging = async_logging
        self._sink = sink or DatabaseNotificationSink()

        self.db_session_factory = None
        self.blobs: Optional[BlobStore] = None
        self.audit: Optional[AuditTrail] = None
        self.locks = LockRegistry()
        self.presence = PresenceRegistry()

        self.evaluator: Optional[PermissionEvaluator] = None
        self.signatures: Optional[SignatureStore] = None
        self.files: Optional[FileService] = None
        self.folders: Optional[FolderService] = None
        self.trash: Optional[TrashManager] = None
        self.accounts: Optional[AccountService] = None
        self.teams: Optional[TeamService] = None
        self.invitations: Optional[InvitationService] = None

        self._started = False

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def startup(self, create_tables: bool = True) -> "Vault":
        if self._started:
            logger.warning("Vault already started")
            return self

        cfg = self.config
        logging.getLogger("teamvault").setLevel(cfg.logging.level.upper())
        logger.info(f"Starting {cfg.name} ({cfg.environment})")

        # 1. Audit log
        file_logger = FileLogger(log_dir=cfg.logging.directory)
        queue = None
        if self._async_logging:
            queue = AsyncLogQueue(
                file_logger,
                flush_interval_ms=cfg.logging.async_queue.flush_interval_ms,
                flush_batch_size=cfg.logging.async_queue.flush_batch_size,
                max_queue_size=cfg.logging.async_queue.max_queue_size,
            )
            queue.start()
        self.audit = AuditTrail(file_logger=file_logger, queue=queue)

        # 2. Metadata database
        self.db_session_factory = init_db(
            cfg.database.url,
            name=self._engine_name,
            create_tables=create_tables,
            pool_size=cfg.database.pool_size,
            max_overflow=cfg.database.max_overflow,
            pool_timeout=cfg.database.pool_timeout,
            pool_recycle=cfg.database.pool_recycle,
            pool_pre_ping=cfg.database.pool_pre_ping,
            echo=cfg.database.echo,
        )

        # 3. Blob store
        self.blobs = BlobStore(
            cfg.storage.root,
            originals_dir=cfg.storage.originals_dir,
            versions_dir=cfg.storage.versions_dir,
        )
        self.blobs.ensure_directories()

        # 4. Services
        factory = self.db_session_factory
        self.evaluator = PermissionEvaluator(audit=self.audit)
        self.signatures = SignatureStore(factory, self.evaluator, locks=self.locks, audit=self.audit)
        self.files = FileService(
            factory, self.blobs, self.evaluator, self.signatures, locks=self.locks, audit=self.audit
        )
        self.folders = FolderService(factory, self.evaluator, self.files, locks=self.locks, audit=self.audit)
        self.trash = TrashManager(factory, self.files, self.folders, locks=self.locks, audit=self.audit)
        self.accounts = AccountService(
            factory,
            self.folders,
            locks=self.locks,
            audit=self.audit,
            password_min_length=cfg.security.password_min_length,
            bcrypt_rounds=cfg.security.bcrypt_rounds,
        )
        self.teams = TeamService(
            factory, self.evaluator, self.folders, sink=self._sink, locks=self.locks, audit=self.audit
        )
        self.invitations = InvitationService(factory, sink=self._sink, locks=self.locks, audit=self.audit)

        self._started = True
        self.audit.record(log_system_event("vault_started", details={"environment": cfg.environment}))
        logger.info(f"{cfg.name} started")
        return self

    def shutdown(self) -> None:
        """Flush the audit queue and dispose the engine."""
        if not self._started:
            return
        self.audit.record(log_system_event("vault_shutdown"))
        self.audit.close()
        close_all_sessions(self._engine_name)
        self._started = False
        logger.info(f"{self.config.name} shut down")

    @property
    def started(self) -> bool:
        return self._started

    def __enter__(self) -> "Vault":
        return self.startup()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
