"""Shared identifiers and defaults for the installer engine."""

from __future__ import annotations

from typing import Dict, List, Tuple

# Quest track step ids, in display order.
STEP_PHP = "php"
STEP_DATABASE = "database"
STEP_DOWNLOAD = "download"
STEP_INSTALL = "install"
STEP_PRESETS = "presets"
STEP_DEPENDENCIES = "dependencies"
STEP_FINALIZE = "finalize"
STEP_EXTRAS = "extras"

# Internal steps that never appear on the quest track.
STEP_RELEASE = "fetch_release_version"
STEP_SYSTEM_STATUS = "check_system_status"
STEP_SELF_UPDATE = "check_installer_update"
STEP_PREFLIGHT = "preflight"

STEP_LABELS: Dict[str, str] = {
    STEP_PHP: "Step 1: Validate PHP version",
    STEP_DATABASE: "Step 2: Check database connection",
    STEP_DOWNLOAD: "Step 3: Download Evolution CMS",
    STEP_INSTALL: "Step 4: Install Evolution CMS",
    STEP_PRESETS: "Step 5: Install presets",
    STEP_DEPENDENCIES: "Step 6: Install dependencies",
    STEP_FINALIZE: "Step 7: Finalize installation",
    STEP_EXTRAS: "Step 8: Install Extras (optional)",
    STEP_RELEASE: "Fetch release version",
    STEP_SYSTEM_STATUS: "Check system status",
    STEP_SELF_UPDATE: "Check installer update",
    STEP_PREFLIGHT: "Prepare installation directory",
}

QUEST_STEPS: List[str] = [
    STEP_PHP,
    STEP_DATABASE,
    STEP_DOWNLOAD,
    STEP_INSTALL,
    STEP_PRESETS,
    STEP_DEPENDENCIES,
    STEP_FINALIZE,
    STEP_EXTRAS,
]
QUEST_TOTAL = len(QUEST_STEPS)

# Question ids shared between the engine and front ends.
Q_SELF_UPDATE = "self_update"
Q_DB_DRIVER = "db_driver"
Q_DB_SQLITE_PATH = "db_sqlite_path"
Q_DB_HOST = "db_host"
Q_DB_NAME = "db_name"
Q_DB_USER = "db_user"
Q_DB_PASSWORD = "db_password"
Q_DB_RETRY = "db_retry"
Q_ADMIN_USERNAME = "admin_username"
Q_ADMIN_EMAIL = "admin_email"
Q_ADMIN_PASSWORD = "admin_password"
Q_ADMIN_DIRECTORY = "admin_directory"
Q_LANGUAGE = "language"
Q_EXTRAS_PROMPT = "extras_prompt"
Q_EXTRAS_SELECT = "extras_select"

PLATFORM_OWNER = "evolution-cms"
PLATFORM_REPO = "evolution"
INSTALLER_REPO = "installer"

MIN_PHP_VERSION: Tuple[int, int, int] = (8, 3, 0)
MIN_ADMIN_PASSWORD_LENGTH = 6

DEFAULT_DB_HOST = "localhost"
DEFAULT_DB_NAME = "evo_db"
DEFAULT_DB_USER = "root"
DEFAULT_SQLITE_PATH = "database.sqlite"
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_DIRECTORY = "manager"
DEFAULT_LANGUAGE = "en"

DB_DRIVERS: List[Tuple[str, str, str]] = [
    # (id, label, system status key)
    ("mysql", "MySQL or MariaDB", "pdo_mysql"),
    ("pgsql", "PostgreSQL", "pdo_pgsql"),
    ("sqlite", "SQLite", "pdo_sqlite"),
    ("sqlsrv", "SQL Server", "pdo_sqlsrv"),
]
DB_DEFAULT_PORTS: Dict[str, int] = {"pgsql": 5432, "sqlsrv": 1433}
DB_FALLBACK_PORT = 3306

LANGUAGES: List[Tuple[str, str]] = [
    ("en", "English"),
    ("uk", "Ukrainian"),
    ("az", "Azerbaijani"),
    ("be", "Belarusian"),
    ("bg", "Bulgarian"),
    ("cs", "Czech"),
    ("da", "Danish"),
    ("de", "German"),
    ("es", "Spanish"),
    ("fa", "Persian"),
    ("fi", "Finnish"),
    ("fr", "French"),
    ("he", "Hebrew"),
    ("it", "Italian"),
    ("ja", "Japanese"),
    ("nl", "Dutch"),
    ("nn", "Norwegian"),
    ("pl", "Polish"),
    ("pt", "Portuguese"),
    ("sv", "Swedish"),
    ("zh", "Chinese"),
    ("ru", "Russian"),
]

GLOBAL_FAILURE_MESSAGE = "Installation failed."
REPORT_FILENAME = "log.md"


def step_label(step_id: str) -> str:
    return STEP_LABELS.get(step_id, step_id)


def db_driver_label(db_type: str) -> str:
    for driver_id, label, _ in DB_DRIVERS:
        if driver_id == db_type:
            return label
    return db_type


def default_db_port(db_type: str) -> int:
    return DB_DEFAULT_PORTS.get(db_type, DB_FALLBACK_PORT)


def language_label(code: str) -> str:
    code = code.strip().lower()
    for lang_id, label in LANGUAGES:
        if lang_id == code:
            return label
    return code
