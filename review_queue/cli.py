"""
Command line entry points: database provisioning and the API server.
"""

import logging

import click

from review_queue.config import settings
from review_queue.event_locker import EventLocker
from review_queue.logging_utils import setup_logging
from review_queue.queue_manager import QueueManager
from review_queue.storage import build_engine, build_session_factory

logger = logging.getLogger(__name__)


@click.group()
def main() -> None:
    """Review queue administration."""
    setup_logging(settings.LOG_LEVEL)


@main.command("init-db")
@click.option("--yes", is_flag=True, default=False, help="Do not ask for confirmation.")
def init_db_command(yes: bool) -> None:
    """
    Drop and recreate the msg and prs tables.

    Every queued item and event lock is lost.
    """
    if not yes:
        click.confirm("This drops the prs and msg tables. Continue?", abort=True)

    engine = build_engine(
        settings.DATABASE_URL,
        echo=settings.DB_ECHO,
        sqlite_busy_timeout=settings.SQLITE_BUSY_TIMEOUT,
    )
    try:
        logger.info("Creating db & indexes...")
        sessions = build_session_factory(engine)

        EventLocker(sessions).initialize()
        logger.info("[locker] success")

        QueueManager(sessions).initialize()
        logger.info("[queue] success")
    except Exception as e:
        logger.error(f"Creating db & indexes: an error occurred: {e}")
        raise click.ClickException(f"database initialization failed: {e}")
    finally:
        engine.dispose()

    click.echo("Database initialized.")


@main.command("serve")
@click.option("--host", default=None, help="Bind address (default: HOST setting).")
@click.option("--port", type=int, default=None, help="Bind port (default: PORT setting).")
def serve_command(host: str | None, port: int | None) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "review_queue.main:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
