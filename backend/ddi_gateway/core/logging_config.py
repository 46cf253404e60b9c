"""
Logging configuration for the DDI gateway
"""

import logging
import logging.handlers
import sys
from pathlib import Path

from .config import get_settings


def setup_logging():
    """Configure application logging"""

    settings = get_settings()

    if settings.LOG_FILE:
        log_file_path = Path(settings.LOG_FILE)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, settings.LOG_LEVEL.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(settings.LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.LOG_FILE:
        file_handler = logging.handlers.RotatingFileHandler(
            settings.LOG_FILE,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # FastAPI/Uvicorn loggers
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)

    # SQLAlchemy logger (only show warnings and above)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    # HTTP client loggers (reduce noise)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    # Audit trail should always be logged
    logging.getLogger("ddi_gateway.audit").setLevel(logging.INFO)

    if settings.DEBUG:
        root_logger.setLevel(logging.DEBUG)
        logging.getLogger("ddi_gateway").setLevel(logging.DEBUG)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name"""
    return logging.getLogger(name)


def get_audit_logger() -> logging.Logger:
    """Get audit trail logger"""
    return logging.getLogger("ddi_gateway.audit")


def get_dns_logger() -> logging.Logger:
    """Get DNS provider logger"""
    return logging.getLogger("ddi_gateway.services.dns_provider")


def get_backup_logger() -> logging.Logger:
    """Get backup manager logger"""
    return logging.getLogger("ddi_gateway.services.backup_service")


def get_monitoring_logger() -> logging.Logger:
    """Get monitoring service logger"""
    return logging.getLogger("ddi_gateway.services.monitoring_service")
