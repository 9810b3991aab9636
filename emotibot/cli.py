"""
Command-line interface for the Emotibot service.

Every option can also be supplied through the environment variable named in
its help text. Errors from any command end up in `_run_with_error_handling`,
which logs them and sets the exit code.
"""

import asyncio
import logging
import signal
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from typing import Any

import typer

from .database import Database, DatabaseOptions, Dialect
from .errors import EmotibotError
from .migrations import Migrator
from .pipeline import EmotionPipeline
from .sentiment import DEFAULT_MODEL, GeminiService
from .store import SQLEmotionStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

app = typer.Typer(help="Emotibot: emotion check-ins for Slack")


# MARK: - CLI Entry Points


def main() -> None:
    """Entry point for the emotibot console script."""
    app()


@app.callback()
def configure(
    ctx: typer.Context,
    log_level: str = typer.Option("INFO", "--log-level", envvar="LOG_LEVEL", help="Logging level"),
    db_dialect: Dialect = typer.Option(
        Dialect.POSTGRES, "--db-dialect", envvar="DB_DIALECT", help="Database dialect"
    ),
    db_host: str = typer.Option(
        "localhost", "--db-host", envvar="DB_HOST", help="postgres -> host, sqlite3 -> file path"
    ),
    db_port: int = typer.Option(5432, "--db-port", envvar="DB_PORT"),
    db_name: str = typer.Option("cerberus", "--db-name", envvar="DB_NAME"),
    db_user: str = typer.Option("postgres", "--db-user", envvar="DB_USER"),
    db_password: str = typer.Option("", "--db-password", envvar="DB_PASSWORD"),
    db_silence: bool = typer.Option(
        False, "--db-silence", envvar="DB_SILENCE", help="Never echo SQL statements"
    ),
) -> None:
    """Configure logging and the database connection shared by all commands."""
    level = _setup_logging(log_level)
    ctx.obj = DatabaseOptions(
        dialect=db_dialect,
        host=db_host,
        port=db_port,
        name=db_name,
        user=db_user,
        password=db_password,
        echo=level <= logging.DEBUG and not db_silence,
    )


# MARK: - Commands


@app.command()
def run(
    ctx: typer.Context,
    slack_bot_token: str = typer.Option(..., "--slack-bot-token", envvar="SLACK_BOT_TOKEN"),
    slack_app_token: str = typer.Option(..., "--slack-app-token", envvar="SLACK_APP_TOKEN"),
    gemini_api_key: str = typer.Option(..., "--gemini-api-key", envvar="GEMINI_API_KEY"),
    gemini_model: str = typer.Option(DEFAULT_MODEL, "--gemini-model", envvar="GEMINI_MODEL"),
    grace_period: float = typer.Option(
        1.0, "--grace-period", help="Seconds in-flight commands get to stop on shutdown"
    ),
) -> None:
    """Run the bot over a Slack Socket Mode connection."""
    from .slack import SlackBot

    options: DatabaseOptions = ctx.obj

    async def _run() -> None:
        stop = asyncio.Event()
        _install_signal_handlers(stop)

        async with Database(options) as database, GeminiService(
            gemini_api_key, gemini_model
        ) as sentiment:
            pipeline = EmotionPipeline(SQLEmotionStore(database), sentiment)
            bot = SlackBot(
                slack_bot_token, slack_app_token, pipeline, grace_period=grace_period
            )
            await bot.run(stop)

        logger.info("terminated")

    _run_with_error_handling(_run())


@app.command()
def serve(
    ctx: typer.Context,
    gemini_api_key: str = typer.Option(..., "--gemini-api-key", envvar="GEMINI_API_KEY"),
    gemini_model: str = typer.Option(DEFAULT_MODEL, "--gemini-model", envvar="GEMINI_MODEL"),
    slack_signing_secret: str = typer.Option(
        "", "--slack-signing-secret", envvar="SLACK_SIGNING_SECRET",
        help="Verify request signatures when set",
    ),
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", help="Port to listen on"),
) -> None:
    """Serve slash commands over HTTP."""
    import uvicorn

    from .server import create_app

    options: DatabaseOptions = ctx.obj

    async def _serve() -> None:
        async with Database(options) as database, GeminiService(
            gemini_api_key, gemini_model
        ) as sentiment:
            pipeline = EmotionPipeline(SQLEmotionStore(database), sentiment)
            server_app = create_app(pipeline, signing_secret=slack_signing_secret or None)
            config = uvicorn.Config(server_app, host=host, port=port, log_level="info")
            await uvicorn.Server(config).serve()

    _run_with_error_handling(_serve())


@app.command()
def migrate(
    ctx: typer.Context,
    rollback_last: bool = typer.Option(
        False, "--rollback-last", envvar="ROLLBACK_LAST", help="Roll back the last migration"
    ),
) -> None:
    """Upgrade the database schema, or roll back the last migration."""
    options: DatabaseOptions = ctx.obj

    async def _migrate() -> None:
        async with Database(options) as database:
            migrator = Migrator(database)
            if rollback_last:
                version = await migrator.rollback_last()
                print(f"Rolled back {version}")
            else:
                version = await migrator.upgrade()
                print(f"Database at version {version}")

    _run_with_error_handling(_migrate())


@app.command()
def summary(
    ctx: typer.Context,
    gemini_api_key: str = typer.Option(..., "--gemini-api-key", envvar="GEMINI_API_KEY"),
    gemini_model: str = typer.Option(DEFAULT_MODEL, "--gemini-model", envvar="GEMINI_MODEL"),
    hours: int = typer.Option(24, "--hours", help="Size of the window to summarize"),
) -> None:
    """Print the average score of recent check-ins with a generated summary."""
    options: DatabaseOptions = ctx.obj

    async def _summary() -> None:
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        async with Database(options) as database, GeminiService(
            gemini_api_key, gemini_model
        ) as sentiment:
            average = await SQLEmotionStore(database).average_score(since)
            if average is None:
                print(f"No scored check-ins in the last {hours} hours")
                return
            print(f"Average score: {average:.2f}")
            print(await sentiment.generate_daily_summary(average))

    _run_with_error_handling(_summary())


# MARK: - Private Helpers


def _setup_logging(log_level: str) -> int:
    """Configure the root logger, falling back to DEBUG for unknown levels."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.DEBUG
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    return level


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _on_signal, sig, stop)


def _on_signal(sig: signal.Signals, stop: asyncio.Event) -> None:
    logger.debug("received signal: %s", sig.name)
    stop.set()


def _run_with_error_handling(coro: Coroutine[Any, Any, Any]) -> None:
    """Run an async coroutine with standardized error handling."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        print("\nStopped")
        raise typer.Exit(0)
    except EmotibotError as e:
        logger.error("%s", e)
        raise typer.Exit(1)
    except Exception:
        logger.exception("Unexpected error")
        raise typer.Exit(1)


if __name__ == "__main__":
    main()
