import json

import pytest

from evoinstaller.errors import ProbeError
from evoinstaller.models import StatusLevel
from evoinstaller.services.system_status import parse_system_status, system_status_argv


def test_argv():
    assert system_status_argv("php8.3", "/opt/installer/bin/evo") == [
        "php8.3",
        "/opt/installer/bin/evo",
        "system-status",
        "--format=json",
        "--no-ansi",
        "--no-interaction",
    ]


def test_parse_coerces_levels_and_recomputes_overall():
    raw = json.dumps(
        {
            "overall": "ok",
            "items": [
                {"key": "php", "label": "PHP", "level": "ok"},
                {"key": "pdo_mysql", "label": "PDO MySQL", "level": "Error", "details": "missing"},
                {"key": "memory", "level": "warning"},
                "garbage",
            ],
        }
    )

    status = parse_system_status(raw)

    assert [item.key for item in status.items] == ["php", "pdo_mysql", "memory"]
    assert status.level_for("pdo_mysql") == StatusLevel.ERROR
    assert status.level_for("memory") == StatusLevel.WARN
    assert status.items[1].details == "missing"
    assert status.overall == StatusLevel.ERROR
    assert status.overall_label == "Errors"


def test_parse_empty_document():
    status = parse_system_status(b'{"items": null}')
    assert status.items == []
    assert status.overall == StatusLevel.OK


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", ""])
def test_parse_rejects_invalid_documents(raw):
    with pytest.raises(ProbeError, match="invalid system status JSON"):
        parse_system_status(raw)
