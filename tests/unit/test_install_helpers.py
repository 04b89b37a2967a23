"""Pure helpers used by the install workflow."""

import pytest

from evoinstaller.config import InstallOptions
from evoinstaller.engine.install import (
    AdminAccount,
    database_driver_options,
    installer_arguments,
    installer_environment,
    is_valid_email,
    language_question,
    retry_prompt_detail,
    sanitize_admin_directory,
)
from evoinstaller.models import StatusItem, StatusLevel, SystemStatus
from evoinstaller.services.database import DatabaseConfig


def status(**levels):
    return SystemStatus(items=[StatusItem(key=k, level=v) for k, v in levels.items()])


def test_every_driver_offered_without_status():
    options = database_driver_options(SystemStatus())
    assert [o.id for o in options] == ["mysql", "pgsql", "sqlite", "sqlsrv"]
    assert all(o.enabled for o in options)


def test_drivers_follow_pdo_extensions():
    options = database_driver_options(
        status(pdo=StatusLevel.OK, pdo_sqlite=StatusLevel.OK, pdo_mysql=StatusLevel.WARN)
    )
    by_id = {o.id: o for o in options}
    assert by_id["sqlite"].enabled
    assert not by_id["mysql"].enabled
    assert by_id["mysql"].reason == "Missing PDO driver: pdo_mysql"
    assert by_id["pgsql"].reason == "Missing PDO driver: pdo_pgsql"


def test_missing_pdo_disables_everything():
    options = database_driver_options(status(pdo=StatusLevel.ERROR, pdo_sqlite=StatusLevel.OK))
    assert not any(o.enabled for o in options)
    assert {o.reason for o in options} == {"Missing PHP extension: pdo"}


@pytest.mark.parametrize(
    "value, valid",
    [
        ("admin@example.com", True),
        (" admin@example.com ", True),
        ("not-an-email", False),
        ("admin@", False),
        ("John Doe <john@example.com>", False),
        ("", False),
    ],
)
def test_is_valid_email(value, valid):
    assert is_valid_email(value) is valid


def test_sanitize_admin_directory():
    assert sanitize_admin_directory(" my admin!/panel ") == "myadminpanel"
    assert sanitize_admin_directory("back_office-1") == "back_office-1"
    assert sanitize_admin_directory("$$$") == "manager"
    assert sanitize_admin_directory("") == "manager"


def test_retry_prompt_detail_collapses_and_truncates():
    assert retry_prompt_detail("  Access\n  denied\tfor user ") == "Access denied for user"
    detail = retry_prompt_detail("x" * 200)
    assert len(detail) == 163
    assert detail.endswith("...")


def test_language_question_defaults_to_english():
    question = language_question()
    assert question.id == "language"
    assert question.default_option().id == "en"
    assert len(question.options) == 22


def test_installer_arguments_and_environment():
    options = InstallOptions(branch="3.x", github_pat="ghp_x", composer_clear_cache=True)
    db = DatabaseConfig(type="pgsql", host="db", port=5432, name="evo", user="evo", password="pw")
    admin = AdminAccount(
        username="admin", email="a@b.io", password="secret1", directory="manager", language="uk"
    )

    args = installer_arguments(options, db, admin)

    assert args[:4] == ["install", ".", "--no-ansi", "--no-interaction"]
    assert "--db-port=5432" in args
    assert "--language=uk" in args
    assert args[-3:] == ["--branch=3.x", "--github-pat=ghp_x", "--composer-clear-cache"]
    assert "--force" not in args

    assert installer_environment("pgsql") == {"CI": "1", "PGDATABASE": "template1"}
    assert installer_environment("mysql") == {"CI": "1"}
