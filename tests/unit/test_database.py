import base64
import json

import pytest

from evoinstaller.errors import ProbeError
from evoinstaller.services.database import (
    PROBE_SCRIPT,
    DatabaseConfig,
    encode_probe_config,
    parse_probe_output,
    probe_argv,
)


def decode(encoded):
    return json.loads(base64.b64decode(encoded))


def test_encoded_config_omits_empty_values():
    config = DatabaseConfig(type="sqlite", name="/srv/site/database.sqlite")
    assert decode(encode_probe_config(config)) == {
        "type": "sqlite",
        "name": "/srv/site/database.sqlite",
    }


def test_encoded_config_keeps_credentials():
    config = DatabaseConfig(
        type="mysql", host="db", port=3306, name="evo", user="root", password="p@ss"
    )
    assert decode(encode_probe_config(config))["password"] == "p@ss"


def test_probe_argv_runs_inline_script():
    config = DatabaseConfig(type="pgsql", host="db", port=5432)
    argv = probe_argv("php", config)
    assert argv[:3] == ["php", "-r", PROBE_SCRIPT]
    assert decode(argv[3])["port"] == 5432


def test_parse_probe_output():
    assert parse_probe_output('{"ok": true}\n').ok
    failed = parse_probe_output('{"ok": false, "error": "Access denied"}')
    assert not failed.ok
    assert failed.error == "Access denied"


def test_parse_probe_output_rejects_noise():
    with pytest.raises(ProbeError, match="unexpected database probe output"):
        parse_probe_output("PHP Warning: something broke")
