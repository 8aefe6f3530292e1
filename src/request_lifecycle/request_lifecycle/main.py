from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .common.http import register_error_handlers
from .container import Container, build_container
from .core.settings import WorkflowSettings
from .database.bootstrap import apply_schema, list_tables
from .guardian_links.controller import register as register_guardian_links
from .payments.controller import register as register_payments

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    logging.basicConfig(
        level=str(getattr(settings, "LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        store_backend = str(getattr(settings, "STORE_BACKEND", "memory"))
        logger.info(
            "settings=%s store=%s db=%s@%s:%s/%s",
            settings_module,
            store_backend,
            db_config.get("user"),
            db_config.get("host"),
            db_config.get("port", 3306),
            db_config.get("database"),
        )

        root = Path(__file__).resolve().parents[3]
        directory_seed = getattr(settings, "DIRECTORY_SEED_FILE", None)
        if directory_seed:
            directory_seed = root / directory_seed

        if store_backend == "mysql" and bool(getattr(settings, "AUTO_INIT_DB", False)):
            schema_path = root / "database" / "schema.sql"
            apply_schema(db_config, schema_path=schema_path)
            logger.info("schema ready (tables=%d)", len(list_tables(db_config)))

        container = build_container(
            db_config=db_config,
            store_backend=store_backend,
            settings=WorkflowSettings.from_settings_module(settings),
            directory_seed=directory_seed,
        )

    app.extensions["request_lifecycle"] = container
    register_error_handlers(app)
    register_guardian_links(app, container)
    register_payments(app, container)

    return app
