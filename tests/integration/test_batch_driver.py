"""Non-interactive front end driving real engines."""

import asyncio

import pytest

from conftest import FakeReleases
from evoinstaller.channels import open_channels
from evoinstaller.cli_utils import BatchDriver
from evoinstaller.config import InstallerConfig, InstallOptions, SimulationConfig
from evoinstaller.engine import InstallEngine, SimulationEngine
from evoinstaller.models import ReleaseInfo
from evoinstaller.reporting import EventLogger, ReportConfig
from evoinstaller.services.database import ProbeResult
from evoinstaller.utils.cancel import CancelToken


async def drive(engine, report=None, quiet=False):
    events, actions = open_channels()
    cancel = CancelToken()
    driver = BatchDriver(actions, cancel, report=report, quiet=quiet)
    _, outcome = await asyncio.wait_for(
        asyncio.gather(engine.run(events, actions, cancel), driver.run(events)), 30
    )
    return outcome


def simulation(fail_step=0):
    return SimulationEngine(
        InstallerConfig(simulation=SimulationConfig(speed=1000, fail_step=fail_step)), seed=3
    )


def install_engine(tmp_path, platform, releases=None, **overrides):
    values = dict(
        dir=str(tmp_path / "site"),
        db_type="sqlite",
        db_name="db.sqlite",
        admin_username="admin",
        admin_email="admin@example.com",
        admin_password="secret123",
        admin_directory="manager",
        language="en",
    )
    values.update(overrides)
    return InstallEngine(
        InstallOptions(**values), platform=platform, releases=releases or FakeReleases()
    )


@pytest.mark.asyncio
async def test_simulated_run_prints_every_step(capsys):
    outcome = await drive(simulation())

    out = capsys.readouterr().out
    assert not outcome.failed
    assert not outcome.cancelled
    assert "==> [php] Step 1: Validate PHP version" in out
    assert "✓ [extras] Step 8: Install Extras (optional)" in out
    assert "• [download] Progress:" in out


@pytest.mark.asyncio
async def test_quiet_mode_hides_progress(capsys):
    await drive(simulation(), quiet=True)

    out = capsys.readouterr().out
    assert "Progress:" not in out
    assert "==> [finalize] Step 7: Finalize installation" in out


@pytest.mark.asyncio
async def test_simulated_failure_marks_outcome_failed(capsys):
    report = EventLogger(ReportConfig(mode="simulation"))

    outcome = await drive(simulation(fail_step=2), report=report)

    assert outcome.failed
    assert not outcome.cancelled
    assert "✗ [database] Simulated failure on step 2" in capsys.readouterr().err
    assert report.had_error
    assert report.failed_steps == ["database"]


@pytest.mark.asyncio
async def test_missing_input_fails_without_prompting(tmp_path, fake_platform, capsys):
    engine = install_engine(tmp_path, fake_platform, db_type="", db_name="")

    outcome = await drive(engine)

    assert outcome.failed
    assert not outcome.cancelled
    err = capsys.readouterr().err
    assert "CLI mode is non-interactive; provide --db-type to continue." in err
    assert fake_platform.installer_args == []


@pytest.mark.asyncio
async def test_failed_database_probe_exits(tmp_path, fake_platform, capsys):
    fake_platform.db_results = [ProbeResult(ok=False, error="Connection refused")]
    engine = install_engine(
        tmp_path,
        fake_platform,
        db_type="mysql",
        db_host="db.local",
        db_name="evo",
        db_user="evo",
        db_password="pw",
    )

    outcome = await drive(engine)

    assert outcome.failed
    err = capsys.readouterr().err
    assert "Database connection failed; exiting (no retry in --cli mode)." in err
    assert len(fake_platform.db_calls) == 1


@pytest.mark.asyncio
async def test_available_update_is_skipped(tmp_path, fake_platform, capsys):
    releases = FakeReleases(
        installer=ReleaseInfo(repo="evolution-cms/installer", highest_version="9.0.0", tag="v9.0.0")
    )
    engine = install_engine(tmp_path, fake_platform, releases, self_version="1.0.0")

    outcome = await drive(engine)

    assert not outcome.failed
    assert outcome.exec_command == []
    out = capsys.readouterr().out
    assert "Installer update available; skipping in --cli mode." in out
    assert "✓ [finalize] Step 7: Finalize installation" in out


@pytest.mark.asyncio
async def test_extras_are_declined_in_batch_mode(tmp_path, fake_platform):
    fake_platform.prereq_error = None
    report = EventLogger()

    outcome = await drive(install_engine(tmp_path, fake_platform), report=report)

    assert not outcome.failed
    assert fake_platform.artisan_calls == []
    assert "Skipping extras installation." in [e.message for e in report.entries]
