"""Quest track reduction and shared state models."""

from evoinstaller.contracts import (
    Event,
    EventType,
    LogPayload,
    Severity,
    StepDonePayload,
    StepsPayload,
)
from evoinstaller.models import (
    ExtrasSelection,
    QuestionKind,
    QuestionOption,
    QuestionState,
    StatusItem,
    StatusLevel,
    StepState,
    StepStatus,
    SystemStatus,
    normalize_system_status,
)
from evoinstaller.state import QuestTrack


def steps_event():
    return Event(
        type=EventType.STEPS,
        payload=StepsPayload(
            steps=[StepState(id="php", label="PHP"), StepState(id="database", label="DB")]
        ),
    )


def done(step_id, ok, severity=Severity.INFO):
    return Event(
        type=EventType.STEP_DONE,
        step_id=step_id,
        severity=severity,
        payload=StepDonePayload(ok=ok),
    )


def test_status_moves_forward_only():
    track = QuestTrack()
    track.apply(steps_event())
    assert track.status("php") == StepStatus.PENDING

    track.apply(Event(type=EventType.STEP_START, step_id="php"))
    assert track.status("php") == StepStatus.ACTIVE

    track.apply(done("php", True))
    track.apply(Event(type=EventType.STEP_START, step_id="php"))
    track.apply(done("php", False, Severity.ERROR))
    assert track.status("php") == StepStatus.DONE
    assert track.status("database") == StepStatus.PENDING


def test_failed_step_status_follows_severity():
    track = QuestTrack([StepState(id="php", label="PHP"), StepState(id="extras", label="Extras")])
    track.apply(done("php", False, Severity.ERROR))
    track.apply(done("extras", False, Severity.WARN))

    assert track.status("php") == StepStatus.ERROR
    assert track.status("extras") == StepStatus.WARN


def test_error_event_marks_step_failed():
    track = QuestTrack()
    track.apply(steps_event())
    track.apply(
        Event(
            type=EventType.ERROR,
            step_id="database",
            severity=Severity.ERROR,
            payload=LogPayload(message="boom"),
        )
    )
    assert track.status("database") == StepStatus.ERROR


def test_unknown_steps_are_ignored():
    track = QuestTrack()
    track.apply(steps_event())
    track.apply(steps_event())
    track.apply(done("fetch_release_version", True))

    assert [s.id for s in track.steps] == ["php", "database"]
    assert track.status("fetch_release_version") is None


def test_system_status_overall_is_recomputed():
    status = SystemStatus(
        items=[
            StatusItem(key="php", level=StatusLevel.OK),
            StatusItem(key="PDO_MySQL", level=StatusLevel.WARN),
        ],
        overall=StatusLevel.ERROR,
    )
    normalized = normalize_system_status(status)

    assert normalized.overall == StatusLevel.WARN
    assert normalized.overall_label == "Warnings"
    assert normalized.updated_at is not None
    assert normalize_system_status(normalized).updated_at == normalized.updated_at
    assert normalized.level_for("pdo_mysql") == StatusLevel.WARN
    assert normalized.level_for("pdo_pgsql") is None


def test_status_level_coercion():
    assert StatusLevel.coerce("Warning") == StatusLevel.WARN
    assert StatusLevel.coerce("err") == StatusLevel.ERROR
    assert StatusLevel.coerce("fine") == StatusLevel.OK
    assert StatusLevel.coerce(None) == StatusLevel.OK


def test_question_option_helpers():
    question = QuestionState(
        id="db_driver",
        kind=QuestionKind.SELECT,
        prompt="Driver?",
        options=[
            QuestionOption(id="mysql", label="MySQL", enabled=False, reason="missing pdo_mysql"),
            QuestionOption(id="sqlite", label="SQLite"),
        ],
        selected=1,
    )
    assert question.option("mysql").reason == "missing pdo_mysql"
    assert question.option("oracle") is None
    assert [o.id for o in question.enabled_options()] == ["sqlite"]
    assert question.default_option().id == "sqlite"
    assert question.model_copy(update={"selected": 5}).default_option() is None


def test_extras_selection_text():
    assert str(ExtrasSelection(name="sSeo", version="1.2.0")) == "sSeo@1.2.0"
    assert str(ExtrasSelection(name="sSeo")) == "sSeo"
