"""
Define application startup and shutdown procedures
"""

import re
from contextlib import asynccontextmanager
from fastapi import FastAPI
from core.config import get_settings
from core.db import init_db
from core.logger import logger


# Handle startup/shutdown tasks
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("In lifespan...starting up")

    # Print configuration settings (mask sensitive info)
    logger.info("Configuration Settings:")

    # Helper function to log settings with sensitive value masking
    def _log_setting(key: str, value):
        """Log a setting, masking sensitive values like passwords and secrets"""
        if ("PASSWORD" in key or "SECRET" in key) and value is not None:
            logger.info("  %s: %s", key, "*****")
        elif "SQLALCHEMY_DATABASE_URI" in key and value is not None:
            # Mask password in database URI if present
            masked_value = re.sub(r"://(.*?):(.*?)@", r"://\1:*****@", value)
            logger.info("  %s: %s", key, masked_value)
        else:
            logger.info("  %s: %s", key, value)

    settings = get_settings()

    # Log computed fields first (they don't appear in vars())
    computed_fields = {
        "SQLALCHEMY_DATABASE_URI": settings.SQLALCHEMY_DATABASE_URI,
        "AWS_SECRET_ACCESS_KEY": settings.AWS_SECRET_ACCESS_KEY,
    }

    for key, value in computed_fields.items():
        _log_setting(key, value)

    # Log remaining settings
    for key, value in vars(settings).items():
        _log_setting(key, value)

    try:
        logger.info("Initializing database...")
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Database initialization failed: %s", e)
        # Re-raise the exception to fail application startup
        raise RuntimeError(f"Cannot start application: database initialization failed - {str(e)}") from e

    logger.info("In lifespan...yield")
    try:
        yield
    finally:
        # Shutdown
        logger.info("In lifespan...shutting down")
