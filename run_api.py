#!/usr/bin/env python3
"""Run the roster API server."""

import logging
import logging.handlers
import sys
from pathlib import Path

# Add project to path
sys.path.insert(0, str(Path(__file__).parent))

from roster.config import get
from roster.db import init_db, DatabaseStorage

logger = logging.getLogger(__name__)


def setup_logging():
    """Log to the console and to a file rotated at midnight."""
    log_file = get("logging.file")
    log_level = get("logging.level", "INFO")

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    # Time-based rotating file handler (keep a week of logs)
    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_file,
        when='midnight',  # Rotate at midnight
        interval=1,       # Every 1 day
        backupCount=7
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            file_handler,
            logging.StreamHandler(),
        ],
    )


def main():
    """Run the API server."""
    setup_logging()

    # Initialize database
    db_path = get("database.path")
    init_db(db_path)
    storage = DatabaseStorage()

    from roster.services import build_services, seed_demo_data
    from roster.scheduler import setup_scheduler

    if get("demo.seed", True):
        seed_demo_data(storage)

    services = build_services(
        storage,
        assignment_strategy=get("tasks.assignment_strategy", "random"),
        registration_lead_days=get("tasks.registration_lead_days", 7),
        timezone=get("timezone"),
    )

    # Get API configuration
    host = get("api.host", "127.0.0.1")
    port = get("api.port", 8000)

    logger.info(f"Starting Roster API on {host}:{port}")
    logger.info("API documentation available at:")
    logger.info(f"  - Swagger UI: http://{host}:{port}/docs")
    logger.info(f"  - ReDoc: http://{host}:{port}/redoc")

    # Import here to avoid circular imports
    import uvicorn
    from roster.api import app, set_services

    set_services(services)

    scheduler = setup_scheduler(
        services.tasks,
        interval_minutes=get("scheduler.sweep_interval", 1),
        tz_name=get("timezone", "UTC"),
    )
    if scheduler:
        scheduler.start()

    try:
        # Run server
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            access_log=True,
        )
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)


if __name__ == "__main__":
    main()
