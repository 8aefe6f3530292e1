from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .common.datetime_utils import Clock, utc_now
from .core.settings import WorkflowSettings
from .database.connection import DatabaseConnection, DBConfig
from .directory.memory_directory import InMemoryGuardianDirectory
from .directory.mysql_guardian_directory import MySQLGuardianDirectory
from .directory.repository import GuardianDirectory
from .guardian_links.model import GuardianLinkRequest
from .guardian_links.service import GuardianLinkWorkflow
from .notifications.dispatcher import LoggingNotificationDispatcher, NotificationDispatcher
from .payments.model import PaymentRequest
from .payments.service import PaymentSettlementWorkflow
from .store.memory_store import InMemoryRequestStore
from .store.mysql_request_store import MySQLGuardianLinkStore, MySQLPaymentRequestStore
from .store.repository import RequestStore
from .validation.engine import ValidationEngine

logger = logging.getLogger(__name__)

STORE_BACKENDS = {"memory", "mysql"}


@dataclass(frozen=True)
class Container:
    settings: WorkflowSettings
    clock: Clock
    notifier: NotificationDispatcher
    validator: ValidationEngine

    directory: GuardianDirectory
    guardian_link_store: RequestStore[GuardianLinkRequest]
    payment_store: RequestStore[PaymentRequest]

    guardian_link_workflow: GuardianLinkWorkflow
    payment_workflow: PaymentSettlementWorkflow


def build_container(
    *,
    db_config: Optional[Mapping[str, Any]] = None,
    store_backend: str = "memory",
    settings: Optional[WorkflowSettings] = None,
    notifier: Optional[NotificationDispatcher] = None,
    directory: Optional[GuardianDirectory] = None,
    directory_seed: Optional[Union[str, Path]] = None,
    clock: Clock = utc_now,
) -> Container:
    backend = (store_backend or "memory").strip().lower()
    if backend not in STORE_BACKENDS:
        raise ValueError(f"Unknown STORE_BACKEND {store_backend!r}; expected one of {sorted(STORE_BACKENDS)}")

    settings = settings or WorkflowSettings()
    notifier = notifier or LoggingNotificationDispatcher()
    validator = ValidationEngine.from_settings(settings)

    if backend == "mysql":
        if not db_config:
            raise ValueError("STORE_BACKEND=mysql requires DB_CONFIG")
        conn = DatabaseConnection.get_instance(DBConfig.from_mapping(db_config))
        directory = directory or MySQLGuardianDirectory(conn)
        guardian_link_store: RequestStore[GuardianLinkRequest] = MySQLGuardianLinkStore(conn)
        payment_store: RequestStore[PaymentRequest] = MySQLPaymentRequestStore(conn)
    else:
        if directory is None:
            directory = InMemoryGuardianDirectory.from_seed_file(directory_seed) if directory_seed else InMemoryGuardianDirectory()
        guardian_link_store = InMemoryRequestStore()
        payment_store = InMemoryRequestStore()
    logger.info("Request stores: %s backend", backend)

    guardian_link_workflow = GuardianLinkWorkflow(
        guardian_link_store,
        directory,
        validator=validator,
        notifier=notifier,
        settings=settings,
        clock=clock,
    )
    payment_workflow = PaymentSettlementWorkflow(
        payment_store,
        validator=validator,
        notifier=notifier,
        settings=settings,
        clock=clock,
    )

    return Container(
        settings=settings,
        clock=clock,
        notifier=notifier,
        validator=validator,
        directory=directory,
        guardian_link_store=guardian_link_store,
        payment_store=payment_store,
        guardian_link_workflow=guardian_link_workflow,
        payment_workflow=payment_workflow,
    )
