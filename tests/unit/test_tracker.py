"""Installer output to step lifecycle classification."""

from evoinstaller.engine.tracker import StepTracker, StepTransition


def test_happy_path_transitions():
    tracker = StepTracker()

    assert tracker.observe("Downloading Evolution CMS") == []
    assert tracker.observe("Evolution CMS downloaded and extracted successfully") == [
        StepTransition("download", started=False, ok=True),
        StepTransition("install", started=True),
    ]
    assert tracker.observe("Running database migrations") == []
    assert tracker.observe("All seeders completed successfully") == [
        StepTransition("install", started=False, ok=True),
        StepTransition("presets", started=False, ok=True),
    ]
    assert tracker.observe("Updating dependencies with Composer") == [
        StepTransition("dependencies", started=True),
    ]
    assert tracker.observe("Dependencies updated successfully") == [
        StepTransition("dependencies", started=False, ok=True),
        StepTransition("finalize", started=True),
    ]
    assert tracker.observe("Installation finalized successfully") == [
        StepTransition("finalize", started=False, ok=True),
    ]
    assert tracker.finalize(success=True) == []
    assert not tracker.failed


def test_unrelated_lines_change_nothing():
    tracker = StepTracker()
    assert tracker.observe("  - Installing psr/log (3.0.0)") == []
    # Progress markers are case sensitive.
    assert tracker.observe("running database migrations") == []
    assert tracker.current == "download"


def test_failure_marker_fails_step_and_rest():
    tracker = StepTracker()
    tracker.observe("Evolution CMS downloaded and extracted successfully")

    assert tracker.observe("ERROR: Migration failed: table exists") == [
        StepTransition("install", started=False, ok=False),
    ]
    assert tracker.failed

    remaining = tracker.finalize(success=True)
    assert [t.step_id for t in remaining] == ["presets", "dependencies", "finalize"]
    assert not any(t.ok for t in remaining)


def test_failure_for_finished_step_is_ignored():
    tracker = StepTracker()
    tracker.observe("Evolution CMS downloaded and extracted successfully")

    assert tracker.observe("Failed to download Evolution CMS") == []
    assert not tracker.failed


def test_clean_exit_completes_unfinished_steps():
    tracker = StepTracker()
    tracker.observe("Running database seeders")

    finished = tracker.finalize(success=True)
    assert [t.step_id for t in finished] == [
        "download",
        "install",
        "presets",
        "dependencies",
        "finalize",
    ]
    assert all(t.ok and not t.started for t in finished)


def test_unclean_exit_fails_unfinished_steps():
    tracker = StepTracker()
    tracker.observe("Evolution CMS downloaded and extracted successfully")

    failed = tracker.finalize(success=False)
    assert [t.step_id for t in failed] == ["install", "presets", "dependencies", "finalize"]
    assert tracker.failed
    assert tracker.is_done("download")


def test_transition_describes_quest_step():
    transition = StepTransition("install", started=True)
    assert transition.index == 4
    assert transition.label == "Step 4: Install Evolution CMS"
