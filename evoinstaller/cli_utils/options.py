"""Validation of command line install options."""

from __future__ import annotations

from typing import List

from ..config import InstallOptions
from ..constants import (
    DB_DRIVERS,
    DEFAULT_ADMIN_DIRECTORY,
    DEFAULT_ADMIN_USERNAME,
    DEFAULT_DB_HOST,
    DEFAULT_DB_USER,
    DEFAULT_LANGUAGE,
    MIN_ADMIN_PASSWORD_LENGTH,
)
from ..engine.install import is_valid_email
from ..errors import ConfigurationError
from ..models import ExtrasSelection
from ..services.extras import split_selection_value

ALLOWED_DB_TYPES = [driver_id for driver_id, _, _ in DB_DRIVERS]


def parse_extras(raw: str) -> List[ExtrasSelection]:
    """Parse ``--extras name[@version],...``."""

    selections: List[ExtrasSelection] = []
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        name, version = split_selection_value(part)
        if not name:
            raise ConfigurationError(f"invalid --extras value: {part!r}")
        selections.append(ExtrasSelection(name=name, version=version))
    return selections


def apply_batch_defaults(options: InstallOptions) -> InstallOptions:
    """Fill defaults for non-interactive runs and reject what cannot be asked.

    Returns a new options object; raises ``ConfigurationError`` naming the
    missing or invalid flag.
    """

    db_type = options.db_type
    if not db_type:
        raise ConfigurationError("CLI mode requires --db-type")
    if db_type not in ALLOWED_DB_TYPES:
        raise ConfigurationError(
            f"CLI mode requires --db-type to be one of: {', '.join(ALLOWED_DB_TYPES)} "
            f"(got {db_type!r})"
        )
    if not options.db_name:
        raise ConfigurationError("CLI mode requires --db-name")

    updates = {}
    if db_type != "sqlite":
        updates["db_host"] = options.db_host or DEFAULT_DB_HOST
        updates["db_user"] = options.db_user or DEFAULT_DB_USER
    updates["admin_username"] = options.admin_username or DEFAULT_ADMIN_USERNAME
    updates["admin_directory"] = options.admin_directory or DEFAULT_ADMIN_DIRECTORY
    updates["language"] = options.language or DEFAULT_LANGUAGE

    if not options.admin_email:
        raise ConfigurationError("CLI mode requires --admin-email")
    if not is_valid_email(options.admin_email):
        raise ConfigurationError(
            f"CLI mode requires a valid --admin-email (got {options.admin_email!r})"
        )

    password = options.admin_password.strip()
    if not password:
        raise ConfigurationError("CLI mode requires --admin-password")
    if len(password) < MIN_ADMIN_PASSWORD_LENGTH:
        raise ConfigurationError(
            f"--admin-password must be at least {MIN_ADMIN_PASSWORD_LENGTH} characters long"
        )
    updates["admin_password"] = password

    return options.model_copy(update=updates)
