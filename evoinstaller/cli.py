"""Command line interface for the Evolution CMS installer."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import threading
from pathlib import Path
from typing import List, Optional, Type

import typer

from evoinstaller import __version__
from evoinstaller.channels import open_channels
from evoinstaller.cli_utils import (
    BatchDriver,
    ConsoleDriver,
    EventDriver,
    RunOutcome,
    apply_batch_defaults,
    parse_extras,
    run_post_exec,
)
from evoinstaller.config import InstallerConfig, InstallOptions, load_config
from evoinstaller.engine import BaseEngine, get_engine
from evoinstaller.errors import ConfigurationError
from evoinstaller.reporting import EventLogger, ReportConfig
from evoinstaller.utils.cancel import CancelToken

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

app = typer.Typer(help="Evolution CMS installer")


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", help="Print internal debug logging to stderr"),
) -> None:
    """Evolution CMS installer entry point."""
    if debug:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )


@app.command("version")
def version() -> None:
    """Print the installer version."""
    typer.echo(f"Evolution CMS Installer {__version__}")


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop, cancel: CancelToken, signals: List[int]
) -> List[int]:
    installed = []
    for signum in signals:
        try:
            loop.add_signal_handler(signum, cancel.cancel, f"signal {signum}")
        except (NotImplementedError, RuntimeError, ValueError):
            logger.debug(f"Cannot install handler for signal {signum}")
            continue
        installed.append(signum)
    return installed


async def _drive(
    engine: BaseEngine,
    driver_cls: Type[EventDriver],
    report: EventLogger,
    config: InstallerConfig,
    quiet: bool,
    signals: List[int],
) -> RunOutcome:
    """Run the engine and the front end side by side until the queue closes."""

    events, actions = open_channels(config)
    cancel = CancelToken()
    driver = driver_cls(actions, cancel, report=report, quiet=quiet)
    loop = asyncio.get_running_loop()
    installed = _install_signal_handlers(loop, cancel, signals)
    if signal.SIGINT not in signals and threading.current_thread() is threading.main_thread():
        # Ctrl+C has to interrupt a blocking prompt.
        signal.signal(signal.SIGINT, signal.default_int_handler)
    engine_task = asyncio.create_task(engine.run(events, actions, cancel))
    try:
        return await driver.run(events)
    except (typer.Abort, KeyboardInterrupt):
        cancel.cancel("interrupted")
        typer.echo("", err=True)
        typer.secho("Installation interrupted.", fg=typer.colors.RED, err=True)
        async for event in events:
            report.record(event)
        driver.outcome.cancelled = True
        driver.outcome.failed = True
        return driver.outcome
    finally:
        await engine_task
        for signum in installed:
            loop.remove_signal_handler(signum)


@app.command("install")
def install(
    directory: str = typer.Argument(".", metavar="DIR", help="Installation directory"),
    force: bool = typer.Option(False, "--force", "-f", help="Install over an existing site"),
    branch: str = typer.Option("", help="Install from a git branch instead of a release"),
    db_type: str = typer.Option("", help="Database driver: mysql, pgsql, sqlite or sqlsrv"),
    db_host: str = typer.Option("", help="Database host"),
    db_port: int = typer.Option(0, help="Database port"),
    db_name: str = typer.Option("", help="Database name (file path for sqlite)"),
    db_user: str = typer.Option("", help="Database user"),
    db_password: str = typer.Option("", help="Database password"),
    admin_username: str = typer.Option("", help="Admin username"),
    admin_email: str = typer.Option("", help="Admin email"),
    admin_password: str = typer.Option("", help="Admin password"),
    admin_directory: str = typer.Option("", help="Manager directory name"),
    language: str = typer.Option("", help="Manager language"),
    github_pat: str = typer.Option(
        "", envvar="GITHUB_PAT", help="GitHub token for release lookups and downloads"
    ),
    extras: str = typer.Option("", help="Extras to install: name[@version],..."),
    log: bool = typer.Option(False, "--log", help="Always write the install report"),
    cli: bool = typer.Option(False, "--cli", help="Non-interactive mode"),
    quiet: bool = typer.Option(False, "--quiet", help="Hide verbose package output"),
    composer_clear_cache: bool = typer.Option(False, help="Clear the composer cache first"),
    composer_update: bool = typer.Option(False, help="Run composer update instead of install"),
    simulate: bool = typer.Option(False, "--simulate", help="Run the simulation engine"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
) -> None:
    """Install Evolution CMS into DIR."""

    try:
        config = load_config(str(config_path) if config_path else None)
        options = InstallOptions(
            force=force,
            dir=directory,
            self_version=__version__,
            branch=branch,
            composer_clear_cache=composer_clear_cache,
            composer_update=composer_update,
            db_type=db_type,
            db_host=db_host,
            db_port=db_port,
            db_name=db_name,
            db_user=db_user,
            db_password=db_password,
            admin_username=admin_username,
            admin_email=admin_email,
            admin_password=admin_password,
            admin_directory=admin_directory,
            language=language,
            github_pat=github_pat,
            extras=parse_extras(extras),
        )
        if cli:
            options = apply_batch_defaults(options)
        engine = get_engine(options, config, backend="simulation" if simulate else None)
    except (ConfigurationError, ValueError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_USAGE)

    report = EventLogger(
        ReportConfig(
            always=log,
            install_dir=os.path.abspath(options.work_dir),
            version=__version__,
            mode="simulation" if simulate else ("cli" if cli else "console"),
            force=options.force,
            branch=options.branch,
            db_type=options.db_type,
            db_host=options.db_host,
            db_port=options.db_port,
            db_name=options.db_name,
            admin_directory=options.admin_directory,
            language=options.language,
        )
    )

    driver_cls = BatchDriver if cli else ConsoleDriver
    # Console prompts need Ctrl+C to reach them as KeyboardInterrupt.
    signals = [signal.SIGINT, signal.SIGTERM] if cli else [signal.SIGTERM]
    try:
        outcome = asyncio.run(_drive(engine, driver_cls, report, config, quiet, signals))
    except KeyboardInterrupt:
        typer.secho("Installation interrupted.", fg=typer.colors.RED, err=True)
        outcome = RunOutcome(failed=True, cancelled=True)

    if outcome.failed:
        report.mark_failure()
    path = report.finalize()
    if path is not None:
        typer.echo(f"Installer log saved to {path}", err=True)

    if outcome.cancelled:
        raise typer.Exit(code=EXIT_INTERRUPTED)
    if outcome.failed:
        raise typer.Exit(code=EXIT_FAILURE)
    if outcome.exec_command:
        raise typer.Exit(code=run_post_exec(outcome.exec_command, config.php_binary))


if __name__ == "__main__":
    app()
