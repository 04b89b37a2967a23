"""Extras catalog parsing, selection handling and failure detection."""

import json

import pytest

from evoinstaller.errors import ProbeError
from evoinstaller.models import ExtrasPackage, ExtrasSelection
from evoinstaller.services.extras import (
    default_extras_version,
    detect_extras_failure,
    extras_install_args,
    last_non_empty_line,
    normalize_extras_selections,
    parse_extras_list,
    selections_from_values,
    tail_output,
)


def test_parse_wrapped_catalog():
    raw = json.dumps(
        {
            "ok": True,
            "packages": [
                {
                    "name": " sSeo ",
                    "version": "1.2.0",
                    "versions": ["1.2.0", "1.2.0", " ", "1.1.0"],
                    "defaultInstallMode": "latest-release",
                },
                {"name": ""},
                {"version": "no name"},
                "junk",
            ],
        }
    )

    packages = parse_extras_list(raw)

    assert [p.name for p in packages] == ["sSeo"]
    assert packages[0].versions == ["1.2.0", "1.1.0"]
    assert packages[0].default_install_mode == "latest-release"


def test_parse_bare_array_from_bytes():
    packages = parse_extras_list(b'[{"name": "sLang", "defaultBranch": "main"}]')
    assert packages[0].default_branch == "main"


@pytest.mark.parametrize(
    "raw, message",
    [
        ("", "empty extras list JSON"),
        ("nope", "unable to parse extras list JSON"),
        ('{"ok": true, "packages": []}', "unable to parse extras list JSON"),
        ('{"ok": false, "error": "no token"}', "no token"),
        ('{"ok": false}', "extras list returned ok=false"),
    ],
)
def test_parse_rejects_unusable_documents(raw, message):
    with pytest.raises(ProbeError, match=message):
        parse_extras_list(raw)


def test_default_version_follows_install_mode():
    pkg = ExtrasPackage(name="a", version="1.0.0", default_branch="main")
    assert default_extras_version(pkg) == "1.0.0"
    pkg = ExtrasPackage(
        name="a", version="1.0.0", default_branch="main", default_install_mode="default-branch"
    )
    assert default_extras_version(pkg) == "main"
    assert default_extras_version(ExtrasPackage(name="a", default_branch="dev")) == "dev"
    assert default_extras_version(ExtrasPackage(name="a", versions=["", "0.9.0"])) == "0.9.0"
    assert default_extras_version(ExtrasPackage(name="a")) == ""


def test_selections_from_values():
    selections = selections_from_values(["sSeo", " sLang@2.0.1 ", "", "@1.0.0"])
    assert selections == [
        ExtrasSelection(name="sSeo"),
        ExtrasSelection(name="sLang", version="2.0.1"),
    ]


def test_normalize_drops_unknown_and_merges_duplicates():
    packages = [
        ExtrasPackage(name="sSeo", version="1.2.0"),
        ExtrasPackage(name="sTheme"),
    ]
    selections = [
        ExtrasSelection(name="sTheme"),
        ExtrasSelection(name="unknown", version="1.0.0"),
        ExtrasSelection(name="sSeo", version="1.1.0"),
        ExtrasSelection(name="sSeo"),
        ExtrasSelection(name="sTheme", version="dev-main"),
    ]

    assert normalize_extras_selections(packages, selections) == [
        ExtrasSelection(name="sTheme", version="dev-main"),
        ExtrasSelection(name="sSeo", version="1.1.0"),
    ]


def test_output_helpers():
    output = "first\r\nsecond\n\n  \n"
    assert last_non_empty_line(output) == "second"
    assert last_non_empty_line("") == ""

    long_output = "\n".join(f"line {i}" for i in range(40))
    tail = tail_output(long_output)
    assert tail.splitlines()[0] == "line 16"
    assert tail.splitlines()[-1] == "line 39"
    assert tail_output(long_output, 0) == ""


@pytest.mark.parametrize(
    "output, expected",
    [
        ("Installing\nYour requirements could not be resolved to an installable set.", "Your requirements could not be resolved to an installable set."),
        ("fatal: repository not found\ncleanup done", "fatal: repository not found"),
        ("Error: missing token", "Error: missing token"),
        ("RuntimeException thrown", "RuntimeException thrown"),
        ("Package operations: 0 installs, 0 updates, 0 removals\nDone", None),
        ("All good", None),
    ],
)
def test_detect_extras_failure(output, expected):
    assert detect_extras_failure(output) == expected


def test_install_args():
    assert extras_install_args(ExtrasSelection(name="sSeo", version="1.2.0")) == [
        "extras",
        "extras",
        "sSeo",
        "1.2.0",
        "--no-ansi",
        "--no-interaction",
    ]
    assert extras_install_args(ExtrasSelection(name="sSeo")) == [
        "extras",
        "extras",
        "sSeo",
        "--no-ansi",
        "--no-interaction",
    ]
