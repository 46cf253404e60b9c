"""
DDI Gateway - FastAPI application

DNS zone and record management over a relational store, synchronized to
BIND9 by TSIG-signed dynamic updates, with backups, health monitoring and
a Kea control-agent proxy.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import api_router
from .core.config import Settings, get_settings
from .core.database import Database
from .core.error_handlers import setup_error_handlers
from .core.logging_config import setup_logging
from .services.backup_service import BackupManager
from .services.base_service import OPERATION_EVENT
from .services.command_runner import CommandRunner, run_command
from .services.dns_provider import ProviderHandle, resolve_dns_provider
from .services.dns_store import DNSStore
from .services.event_bus import EventBus
from .services.kea_client import KeaClient
from .services.monitoring_service import DNSMonitor, Probe
from .services.record_service import DNSRecordService
from .services.tsig_service import TsigKeyService
from .services.zone_service import DNSZoneService
from .websocket.manager import HealthBroadcaster

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    provider: Optional[ProviderHandle] = None,
    command_runner: CommandRunner = run_command,
    monitor_probes: Optional[Dict[str, Probe]] = None
) -> FastAPI:
    """Build the application; collaborators not given are constructed from settings at startup"""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}...")

        db = database or Database(settings=settings)
        if not db.is_postgres:
            # Postgres schemas are managed by alembic
            await db.create_all()

        events = EventBus()
        store = DNSStore(db)
        provider_handle = provider if provider is not None else resolve_dns_provider(settings, command_runner)

        monitor = DNSMonitor(settings, store=store, database=db, events=events, probes=monitor_probes)
        backup_manager = BackupManager(store, settings, events=events, command_runner=command_runner)
        broadcaster = HealthBroadcaster(events)

        app.state.settings = settings
        app.state.database = db
        app.state.events = events
        app.state.store = store
        app.state.provider = provider_handle
        app.state.zone_service = DNSZoneService(store, events)
        app.state.record_service = DNSRecordService(store, provider_handle, events)
        app.state.tsig_service = TsigKeyService(store, events)
        app.state.backup_manager = backup_manager
        app.state.monitor = monitor
        app.state.broadcaster = broadcaster
        app.state.kea_client = KeaClient(settings)

        events.subscribe(
            OPERATION_EVENT,
            lambda event, payload: monitor.record_operation(payload["operation"], payload["success"]),
        )
        broadcaster.start()

        try:
            await backup_manager.initialize()
        except OSError as e:
            logger.error(f"Backup directory {backup_manager.backup_dir} unavailable: {e}")

        if settings.MONITORING_ENABLED:
            await monitor.start()
        if settings.BACKUP_SCHEDULE_ENABLED:
            backup_manager.schedule_backups()

        logger.info("API server started successfully")

        yield

        logger.info("Shutting down API server...")
        await monitor.stop()
        await backup_manager.stop_scheduled_backups()
        await broadcaster.stop()
        await events.drain()
        if database is None:
            await db.close()
        logger.info("API server stopped")

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="DNS zone, record, backup and monitoring API with a BIND9 backend",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan
    )

    setup_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running",
            "docs": "/docs" if settings.DEBUG else "disabled in production",
        }

    return app


def main() -> None:
    setup_logging()
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=8001,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
