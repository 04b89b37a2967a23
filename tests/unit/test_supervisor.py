"""Installer subprocess supervision and line presentation."""

import asyncio
import sys

import pytest

from evoinstaller.channels import open_channels
from evoinstaller.contracts import EventType
from evoinstaller.engine.emitter import EventEmitter
from evoinstaller.engine.supervisor import (
    InstallSupervisor,
    LineClassifier,
    clean_line,
    should_suppress,
)
from evoinstaller.errors import InstallerError
from evoinstaller.utils.cancel import CancelToken


def test_clean_line_strips_console_tags():
    assert clean_line("  <info>Done</info>\n") == "Done"
    assert clean_line("<fg=red>x</>") == "x"


def test_suppressed_lines():
    assert should_suppress("✔ PHP version 8.3.4 is supported.")
    assert should_suppress("PHP version 8.3.4 is supported.")
    assert should_suppress("INFO  Seeding database.")
    assert not should_suppress("Seeding database.")
    assert not should_suppress("PHP version 7.4 is not supported")


def test_seeder_completion_replaces_start_line():
    classifier = LineClassifier()
    start = classifier.classify("Running seeder: AdminSeeder...", False, "install")
    assert start.fields == {}

    done = classifier.classify("✔ Seeder AdminSeeder completed.", False, "install")
    assert done.type == EventType.LOG
    assert done.fields == {"op": "replace_last"}


def test_seeder_completion_for_other_seeder_is_plain():
    classifier = LineClassifier()
    classifier.classify("Running seeder: AdminSeeder...", False, "install")
    done = classifier.classify("✔ Seeder SiteSeeder completed.", False, "install")
    assert done.fields == {}


def test_inline_progress_line():
    classified = LineClassifier().classify("Downloading [=====>    ] 42% (3/7)", False, "download")

    assert classified.message == "Downloading"
    assert classified.fields == {
        "kind": "inline_progress",
        "op": "replace_last_if_same",
        "progress_key": "downloading",
        "label": "Downloading",
        "pct": "42",
        "tail": "(3/7)",
    }


def test_repeated_line_replaces_previous():
    classifier = LineClassifier()
    first = classifier.classify("Waiting for lock", False, "install")
    again = classifier.classify("Waiting for lock", False, "install")
    other_step = classifier.classify("Waiting for lock", False, "presets")

    assert first.fields == {}
    assert again.fields == {"op": "replace_last"}
    assert other_step.fields == {}


def test_stderr_lines_are_warnings():
    classified = LineClassifier().classify("Deprecated: foo()", True, "install")
    assert classified.type == EventType.WARNING


async def supervise(script):
    events, _ = open_channels()
    emitter = EventEmitter(events, CancelToken(), "install")
    seen = []

    async def produce():
        try:
            await InstallSupervisor(emitter).run([sys.executable, "-c", script])
        finally:
            events.close()

    async def consume():
        async for event in events:
            seen.append(event)

    results = await asyncio.wait_for(
        asyncio.gather(produce(), consume(), return_exceptions=True), 30
    )
    return seen, results[0]


@pytest.mark.asyncio
async def test_run_reports_output_and_steps():
    script = "\n".join(
        [
            "print('<info>Evolution CMS downloaded and extracted successfully</info>')",
            "print('Running database migrations')",
            "print('All seeders completed successfully')",
        ]
    )

    events, error = await supervise(script)

    assert error is None
    starts = [e.step_id for e in events if e.type == EventType.STEP_START]
    assert starts == ["install"]
    done = [(e.step_id, e.payload.ok) for e in events if e.type == EventType.STEP_DONE]
    assert done == [
        ("download", True),
        ("install", True),
        ("presets", True),
        ("dependencies", True),
        ("finalize", True),
    ]
    logs = [e for e in events if e.type == EventType.LOG]
    assert logs[0].message == "Evolution CMS downloaded and extracted successfully"
    assert all(e.source == "php" for e in logs)


@pytest.mark.asyncio
async def test_nonzero_exit_fails_every_unfinished_step():
    script = "import sys\nsys.stderr.write('boom\\n')\nsys.exit(3)"

    events, error = await supervise(script)

    assert isinstance(error, InstallerError)
    assert str(error) == "installer exited with status 3"
    warnings = [e.message for e in events if e.type == EventType.WARNING]
    assert warnings == ["boom"]
    done = [e for e in events if e.type == EventType.STEP_DONE]
    assert len(done) == 5
    assert not any(e.payload.ok for e in done)


@pytest.mark.asyncio
async def test_failure_marker_aborts_run():
    script = "\n".join(
        [
            "import sys, time",
            "print('Failed to download Evolution CMS: 404', flush=True)",
            "time.sleep(5)",
            "print('Evolution CMS downloaded and extracted successfully')",
        ]
    )

    events, error = await supervise(script)

    assert str(error) == "installation aborted due to failed step"
    download = [e for e in events if e.type == EventType.STEP_DONE and e.step_id == "download"]
    assert len(download) == 1
    assert not download[0].payload.ok


@pytest.mark.asyncio
async def test_missing_executable_fails_to_start():
    events, _ = open_channels()
    supervisor = InstallSupervisor(EventEmitter(events, CancelToken(), "install"))

    with pytest.raises(InstallerError, match="unable to start installer"):
        await supervisor.run(["/nonexistent/evo-installer-binary"])
