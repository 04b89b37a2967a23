"""The real install workflow."""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from email.utils import parseaddr
from pathlib import Path
from typing import Dict, List, Optional

import httpx
from pydantic import BaseModel

from ..channels.base import ActionSource
from ..config import InstallerConfig, InstallOptions
from ..constants import (
    DB_DRIVERS,
    DEFAULT_ADMIN_DIRECTORY,
    DEFAULT_ADMIN_USERNAME,
    DEFAULT_DB_HOST,
    DEFAULT_DB_NAME,
    DEFAULT_DB_USER,
    DEFAULT_LANGUAGE,
    DEFAULT_SQLITE_PATH,
    GLOBAL_FAILURE_MESSAGE,
    LANGUAGES,
    MIN_ADMIN_PASSWORD_LENGTH,
    MIN_PHP_VERSION,
    Q_ADMIN_DIRECTORY,
    Q_ADMIN_EMAIL,
    Q_ADMIN_PASSWORD,
    Q_ADMIN_USERNAME,
    Q_DB_DRIVER,
    Q_DB_HOST,
    Q_DB_NAME,
    Q_DB_PASSWORD,
    Q_DB_RETRY,
    Q_DB_SQLITE_PATH,
    Q_DB_USER,
    Q_LANGUAGE,
    Q_SELF_UPDATE,
    QUEST_STEPS,
    STEP_DATABASE,
    STEP_DOWNLOAD,
    STEP_PHP,
    STEP_PREFLIGHT,
    STEP_RELEASE,
    STEP_SELF_UPDATE,
    STEP_SYSTEM_STATUS,
    db_driver_label,
    default_db_port,
    language_label,
)
from ..contracts import Severity
from ..errors import EntryPointNotFound, InstallerError, OperationCancelled, ProbeError
from ..models import (
    QuestionKind,
    QuestionOption,
    QuestionState,
    ReleaseInfo,
    StatusLevel,
    SystemStatus,
    utcnow,
)
from ..services.database import DatabaseConfig, ProbeResult
from ..services.entrypoints import detect_existing_install, is_windows
from ..services.platform import PhpPlatform, PlatformServices
from ..services.releases import ReleaseDetector
from ..utils.cancel import CancelToken
from ..versions import SemanticVersion
from .base import BaseEngine
from .emitter import EventEmitter
from .extras import ExtrasFlow
from .prompts import Prompter
from .supervisor import InstallSupervisor

logger = logging.getLogger(__name__)

SELF_UPDATE_COMMAND = "evo self-update"
RETRY_PROMPT_LIMIT = 160
SECRET_MASK = "••••••••"

_ADMIN_DIR_INVALID = re.compile(r"[^a-zA-Z0-9_-]+")
_WHITESPACE = re.compile(r"\s+")


class AdminAccount(BaseModel):
    """Manager account and language chosen for the new site."""

    username: str
    email: str
    password: str
    directory: str
    language: str


def database_driver_options(status: SystemStatus) -> List[QuestionOption]:
    """Driver choices derived from a system-status snapshot.

    Without a snapshot every driver is offered. Otherwise a driver needs both
    ``pdo`` and its own PDO extension reported ``ok``.
    """
    if not status.items:
        return [QuestionOption(id=d, label=label) for d, label, _ in DB_DRIVERS]

    pdo_ok = status.level_for("pdo") == StatusLevel.OK
    options = []
    for driver_id, label, status_key in DB_DRIVERS:
        if not pdo_ok:
            options.append(
                QuestionOption(
                    id=driver_id, label=label, enabled=False, reason="Missing PHP extension: pdo"
                )
            )
        elif status.level_for(status_key) == StatusLevel.OK:
            options.append(QuestionOption(id=driver_id, label=label))
        else:
            options.append(
                QuestionOption(
                    id=driver_id,
                    label=label,
                    enabled=False,
                    reason=f"Missing PDO driver: {status_key}",
                )
            )
    return options


def language_question() -> QuestionState:
    options = [QuestionOption(id=code, label=label) for code, label in LANGUAGES]
    selected = next(i for i, opt in enumerate(options) if opt.id == DEFAULT_LANGUAGE)
    return QuestionState(
        id=Q_LANGUAGE,
        kind=QuestionKind.SELECT,
        prompt="Which language do you want to use for installation?",
        options=options,
        selected=selected,
    )


def sanitize_admin_directory(value: str) -> str:
    cleaned = _ADMIN_DIR_INVALID.sub("", (value or "").strip())
    return cleaned or DEFAULT_ADMIN_DIRECTORY


def is_valid_email(value: str) -> bool:
    value = (value or "").strip()
    if not value or any(ch.isspace() for ch in value):
        return False
    _, address = parseaddr(value)
    if address != value:
        return False
    local, _, domain = address.rpartition("@")
    return bool(local) and bool(domain) and "@" not in domain


def retry_prompt_detail(message: str) -> str:
    """Collapse whitespace and cap the length of a probe error for a prompt."""
    detail = _WHITESPACE.sub(" ", (message or "").strip())
    if len(detail) > RETRY_PROMPT_LIMIT:
        detail = detail[:RETRY_PROMPT_LIMIT] + "..."
    return detail


def installer_arguments(
    options: InstallOptions, db: DatabaseConfig, admin: AdminAccount
) -> List[str]:
    """Arguments for the installer console ``install`` command."""

    args = [
        "install",
        ".",
        "--no-ansi",
        "--no-interaction",
        f"--db-type={db.type}",
        f"--db-host={db.host}",
        f"--db-port={db.port}",
        f"--db-name={db.name}",
        f"--db-user={db.user}",
        f"--db-password={db.password}",
        f"--admin-username={admin.username}",
        f"--admin-email={admin.email}",
        f"--admin-password={admin.password}",
        f"--admin-directory={admin.directory}",
        f"--language={admin.language}",
    ]
    if options.branch:
        args.append(f"--branch={options.branch}")
    if options.github_pat:
        args.append(f"--github-pat={options.github_pat}")
    if options.force:
        args.append("--force")
    if options.composer_update:
        args.append("--composer-update")
    if options.composer_clear_cache:
        args.append("--composer-clear-cache")
    return args


def installer_environment(db_type: str) -> Dict[str, str]:
    env = {"CI": "1"}
    if db_type == "pgsql":
        # Older installer builds validate credentials without a database name.
        env["PGDATABASE"] = "template1"
    return env


class InstallEngine(BaseEngine):
    """Sequential install workflow driven by operator answers.

    Startup probes (release lookup, system status, self-update check) never
    stop the run. Preflight, PHP validation and the database loop do.
    The installer console then runs under supervision and the optional
    extras flow finishes the run.
    """

    source = "install"

    def __init__(
        self,
        options: InstallOptions,
        config: Optional[InstallerConfig] = None,
        platform: Optional[PlatformServices] = None,
        releases: Optional[ReleaseDetector] = None,
    ) -> None:
        self.options = options
        self.config = config or InstallerConfig()
        self.platform = platform or PhpPlatform(self.config)
        cache_dir = self.config.release.cache_dir
        self.releases = releases or ReleaseDetector(
            cache_dir=Path(cache_dir) if cache_dir else None,
            token=options.github_pat or None,
        )
        self.status = SystemStatus()
        self.release: Optional[ReleaseInfo] = None

    async def _run(
        self, emitter: EventEmitter, actions: ActionSource, cancel: CancelToken
    ) -> None:
        prompter = Prompter(emitter, actions)
        await emitter.steps(QUEST_STEPS)

        await self._detect_release(emitter)
        await self._check_system_status(emitter, cancel)
        if await self._offer_self_update(emitter, prompter):
            return

        work_dir = await self._preflight(emitter)
        if work_dir is None:
            return
        if not await self._validate_php(emitter, cancel):
            return

        await emitter.step_start(STEP_DATABASE)
        db = await self._configure_database(emitter, prompter, work_dir, cancel)
        if db is None:
            return
        admin = await self._collect_admin(emitter, prompter)
        await emitter.step_done(STEP_DATABASE, True)

        if not await self._install(emitter, work_dir, db, admin):
            return

        flow = ExtrasFlow(
            emitter,
            actions,
            self.platform,
            preselected=self.options.extras,
            token=self.options.github_pat,
            fail_fast=self.config.extras_fail_fast,
        )
        await flow.run(work_dir)

    # Startup probes

    async def _detect_release(self, emitter: EventEmitter) -> None:
        release_conf = self.config.release
        await emitter.step_start(STEP_RELEASE)
        await emitter.log(STEP_RELEASE, "Fetching releases…")
        await emitter.progress(STEP_RELEASE, 0)

        async def on_page(page: int) -> None:
            if page == 1:
                await emitter.progress(STEP_RELEASE, 50)

        try:
            info, cached = await self.releases.detect_highest_stable(
                release_conf.owner,
                release_conf.repo,
                max_pages=release_conf.max_pages,
                cache_ttl=timedelta(seconds=release_conf.cache_ttl_seconds),
                include_prerelease=release_conf.include_prerelease,
                on_page_fetched=on_page,
            )
        except (ProbeError, httpx.HTTPError, OSError) as exc:
            logger.warning(f"Release lookup failed: {exc}")
            await emitter.warn(
                STEP_RELEASE, "Unable to fetch release info; continuing…", {"error": str(exc)}
            )
            await emitter.step_done(STEP_RELEASE, False, severity=Severity.WARN)
            return

        self.release = info
        tag = info.tag or f"v{info.highest_version}"
        message = f"Highest stable release: {tag}"
        if cached:
            message += " (cached)"
        await emitter.log(STEP_RELEASE, message)
        await emitter.progress(STEP_RELEASE, 100)
        await emitter.step_done(STEP_RELEASE, True, release=info)

    async def _check_system_status(self, emitter: EventEmitter, cancel: CancelToken) -> None:
        await emitter.step_start(STEP_SYSTEM_STATUS)
        await emitter.log(STEP_SYSTEM_STATUS, "Checking system status…")
        try:
            status = await self.platform.system_status(cancel)
        except (ProbeError, EntryPointNotFound, OSError) as exc:
            logger.warning(f"System status probe failed: {exc}")
            await emitter.warn(
                STEP_SYSTEM_STATUS,
                "Unable to check system status; continuing…",
                {"error": str(exc)},
            )
            self.status = SystemStatus(updated_at=utcnow())
            await emitter.system_status(STEP_SYSTEM_STATUS, self.status)
            await emitter.step_done(STEP_SYSTEM_STATUS, False, severity=Severity.WARN)
            return
        self.status = status
        await emitter.system_status(STEP_SYSTEM_STATUS, status)
        await emitter.step_done(STEP_SYSTEM_STATUS, True)

    async def _newest_installer(self, emitter: EventEmitter) -> Optional[ReleaseInfo]:
        release_conf = self.config.release
        try:
            info, _ = await self.releases.detect_highest_stable(
                release_conf.owner,
                release_conf.installer_repo,
                max_pages=release_conf.max_pages,
                cache_ttl=timedelta(seconds=release_conf.installer_cache_ttl_seconds),
            )
            if info.highest_version:
                return info
        except (ProbeError, httpx.HTTPError, OSError) as exc:
            logger.debug(f"Installer release scan failed, trying latest endpoint: {exc}")
        try:
            return await self.releases.latest_release(
                release_conf.owner, release_conf.installer_repo
            )
        except (ProbeError, httpx.HTTPError, OSError) as exc:
            logger.warning(f"Installer update check failed: {exc}")
            await emitter.warn(
                STEP_SELF_UPDATE, "Unable to check for installer updates.", {"error": str(exc)}
            )
            return None

    async def _offer_self_update(self, emitter: EventEmitter, prompter: Prompter) -> bool:
        """Return ``True`` when the run ends with an exec request."""

        current_raw = self.options.self_version
        if current_raw.lower() in ("", "dev", "unknown"):
            return False
        current = SemanticVersion.parse_prefix(current_raw)
        if current is None:
            return False

        await emitter.step_start(STEP_SELF_UPDATE)
        newest = await self._newest_installer(emitter)
        available = SemanticVersion.parse_prefix(newest.highest_version) if newest else None
        if newest is None:
            await emitter.step_done(STEP_SELF_UPDATE, False, severity=Severity.WARN)
            return False
        if available is None or available <= current:
            await emitter.step_done(STEP_SELF_UPDATE, True)
            return False

        tag = newest.tag or f"v{newest.highest_version}"
        await emitter.log(
            STEP_SELF_UPDATE, f"New installer version available: {tag} (current {current_raw})."
        )
        await emitter.log(STEP_SELF_UPDATE, f"Recommended update command: {SELF_UPDATE_COMMAND}")

        bootstrapper = ""
        reason = ""
        try:
            bootstrapper = self.platform.bootstrapper()
        except EntryPointNotFound as exc:
            reason = str(exc)
        question = QuestionState(
            id=Q_SELF_UPDATE,
            kind=QuestionKind.SELECT,
            prompt="A new installer version is available. Update now?",
            options=[
                QuestionOption(
                    id="update",
                    label=f"Update now ({SELF_UPDATE_COMMAND})",
                    enabled=bool(bootstrapper),
                    reason=reason,
                ),
                QuestionOption(id="skip", label="Continue without updating"),
            ],
            selected=1,
        )
        choice = await prompter.select(STEP_SELF_UPDATE, question)
        if choice != "update":
            await emitter.step_done(STEP_SELF_UPDATE, True)
            return False

        await emitter.log(STEP_SELF_UPDATE, f"Exiting installer and running: {SELF_UPDATE_COMMAND}")
        await emitter.step_done(STEP_SELF_UPDATE, True)
        command = [bootstrapper, "self-update"]
        if is_windows():
            command = [self.config.php_binary, bootstrapper, "self-update"]
        await emitter.exec_request(STEP_SELF_UPDATE, command)
        return True

    # Gates

    async def _preflight(self, emitter: EventEmitter) -> Optional[str]:
        work_dir = self.options.work_dir
        await emitter.step_start(STEP_PREFLIGHT)
        try:
            Path(work_dir).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            await emitter.error(
                STEP_PREFLIGHT,
                "Unable to prepare installation directory.",
                {"error": str(exc), "dir": work_dir},
            )
            await emitter.step_done(STEP_PREFLIGHT, False)
            return None

        if not self.options.force:
            found, marker = detect_existing_install(work_dir)
            if found:
                await emitter.error(
                    STEP_PREFLIGHT,
                    f"Existing Evolution CMS installation detected ({marker}) in {work_dir}. "
                    "Re-run with -f/--force to install anyway.",
                )
                await emitter.step_done(STEP_PREFLIGHT, False)
                return None
        await emitter.step_done(STEP_PREFLIGHT, True)
        return work_dir

    async def _validate_php(self, emitter: EventEmitter, cancel: CancelToken) -> bool:
        await emitter.step_start(STEP_PHP)
        try:
            raw = await self.platform.php_version(cancel)
        except (ProbeError, OSError) as exc:
            await emitter.error(STEP_PHP, "Unable to detect PHP version.", {"error": str(exc)})
            await emitter.step_done(STEP_PHP, False)
            return False

        version = SemanticVersion.parse_prefix(raw)
        if version is None:
            await emitter.error(
                STEP_PHP,
                "Unable to detect PHP version.",
                {"error": f"unable to parse PHP_VERSION: {raw!r}"},
            )
            await emitter.step_done(STEP_PHP, False)
            return False
        if version.as_tuple() < MIN_PHP_VERSION:
            minimum = ".".join(str(part) for part in MIN_PHP_VERSION)
            await emitter.error(
                STEP_PHP, f"PHP version {raw} is not supported (requires >= {minimum})."
            )
            await emitter.step_done(STEP_PHP, False)
            return False

        await emitter.log(STEP_PHP, f"✔ PHP version {raw} is supported.")
        await emitter.step_done(STEP_PHP, True)
        return True

    # Database

    async def _choose_driver(
        self, emitter: EventEmitter, prompter: Prompter, options: List[QuestionOption]
    ) -> str:
        requested = self.options.db_type
        if requested:
            match = next((opt for opt in options if opt.id == requested), None)
            if match is not None and match.enabled:
                return requested
            if match is not None:
                reason = match.reason or "not available"
                await emitter.warn(
                    STEP_DATABASE,
                    f"Requested database driver '{requested}' cannot be used: {reason}.",
                )
            else:
                await emitter.warn(
                    STEP_DATABASE, f"Unknown database driver requested: '{requested}'."
                )

        enabled = [opt for opt in options if opt.enabled]
        if len(enabled) == 1:
            return enabled[0].id
        question = QuestionState(
            id=Q_DB_DRIVER,
            kind=QuestionKind.SELECT,
            prompt="Which database driver do you want to use?",
            options=options,
            selected=options.index(enabled[0]),
        )
        return await prompter.select(STEP_DATABASE, question)

    async def _ask_or_use(
        self,
        prompter: Prompter,
        supplied: str,
        question_id: str,
        prompt: str,
        default: str = "",
        secret: bool = False,
    ) -> str:
        if supplied:
            return supplied
        question = QuestionState(
            id=question_id,
            kind=QuestionKind.INPUT,
            prompt=prompt,
            default=default,
            secret=secret,
        )
        answer = await prompter.input(STEP_DATABASE, question)
        if secret:
            return answer
        return answer.strip() or default

    async def _connection_settings(
        self, emitter: EventEmitter, prompter: Prompter, db_type: str
    ) -> DatabaseConfig:
        opts = self.options
        if db_type == "sqlite":
            path = await self._ask_or_use(
                prompter,
                opts.db_name,
                Q_DB_SQLITE_PATH,
                "What is the path to your SQLite database file?",
                DEFAULT_SQLITE_PATH,
            )
            await emitter.log(STEP_DATABASE, f"Selected database path: {path}.")
            return DatabaseConfig(type=db_type, name=path)

        host = await self._ask_or_use(
            prompter, opts.db_host, Q_DB_HOST, "Where is your database server located?", DEFAULT_DB_HOST
        )
        await emitter.log(STEP_DATABASE, f"Selected database host: {host}.")
        name = await self._ask_or_use(
            prompter, opts.db_name, Q_DB_NAME, "What is your database name?", DEFAULT_DB_NAME
        )
        await emitter.log(STEP_DATABASE, f"Selected database name: {name}.")
        user = await self._ask_or_use(
            prompter, opts.db_user, Q_DB_USER, "What is your database username?", DEFAULT_DB_USER
        )
        await emitter.log(STEP_DATABASE, f"Selected database user: {user}.")
        password = await self._ask_or_use(
            prompter, opts.db_password, Q_DB_PASSWORD, "What is your database password?", secret=True
        )
        label = SECRET_MASK if password.strip() else "(empty)"
        await emitter.log(STEP_DATABASE, f"Selected database password: {label}.")

        port = opts.db_port if opts.db_port > 0 else default_db_port(db_type)
        return DatabaseConfig(
            type=db_type, host=host, port=port, name=name, user=user, password=password
        )

    async def _configure_database(
        self,
        emitter: EventEmitter,
        prompter: Prompter,
        work_dir: str,
        cancel: CancelToken,
    ) -> Optional[DatabaseConfig]:
        """Select, configure and probe a database until it works or the user exits."""

        while True:
            options = database_driver_options(self.status)
            if not any(opt.enabled for opt in options):
                await emitter.error(
                    STEP_DATABASE,
                    "No supported PDO database drivers are available. Please install one of: "
                    "pdo_mysql, pdo_pgsql, pdo_sqlite, pdo_sqlsrv.",
                )
                await emitter.step_done(STEP_DATABASE, False)
                return None

            db_type = await self._choose_driver(emitter, prompter, options)
            await emitter.log(STEP_DATABASE, f"Selected database driver: {db_driver_label(db_type)}.")
            db = await self._connection_settings(emitter, prompter, db_type)

            await emitter.log(STEP_DATABASE, "Testing database connection...")
            try:
                result: ProbeResult = await self.platform.test_database(work_dir, db, cancel)
            except (ProbeError, OSError) as exc:
                logger.warning(f"Database probe could not run: {exc}")
                await emitter.error(
                    STEP_DATABASE,
                    "Database connection check failed unexpectedly.",
                    {"error": str(exc)},
                )
                await emitter.step_done(STEP_DATABASE, False)
                return None

            if result.ok:
                await emitter.log(
                    STEP_DATABASE, "✔ Database connection successful!", {"op": "replace_last"}
                )
                return db

            await emitter.warn(STEP_DATABASE, f"Database connection failed: {result.error}")
            question = QuestionState(
                id=Q_DB_RETRY,
                kind=QuestionKind.SELECT,
                prompt=(
                    f"Database connection failed: {retry_prompt_detail(result.error)}"
                    " (try again or exit installation?)"
                ),
                options=[
                    QuestionOption(id="exit", label="Exit installation"),
                    QuestionOption(id="retry", label="Try again"),
                ],
                selected=1,
            )
            if await prompter.select(STEP_DATABASE, question) == "exit":
                await emitter.error(STEP_DATABASE, "Installation cancelled by user.")
                await emitter.step_done(STEP_DATABASE, False)
                return None

    # Admin account

    async def _admin_email(self, emitter: EventEmitter, prompter: Prompter) -> str:
        supplied = self.options.admin_email
        if supplied:
            if is_valid_email(supplied):
                return supplied
            await emitter.warn(
                STEP_DATABASE,
                "Provided --admin-email is invalid; please enter it again.",
                {"error": "invalid email address"},
            )
        question = QuestionState(id=Q_ADMIN_EMAIL, kind=QuestionKind.INPUT, prompt="Enter your Admin email:")
        while True:
            email = (await prompter.input(STEP_DATABASE, question)).strip()
            if not email:
                await emitter.warn(STEP_DATABASE, "Email address cannot be empty. Please try again.")
            elif not is_valid_email(email):
                await emitter.warn(STEP_DATABASE, "Please enter a valid email address. Try again.")
            else:
                return email

    async def _admin_password(self, emitter: EventEmitter, prompter: Prompter) -> str:
        supplied = self.options.admin_password.strip()
        if supplied:
            if len(supplied) >= MIN_ADMIN_PASSWORD_LENGTH:
                return supplied
            await emitter.warn(
                STEP_DATABASE, "Provided --admin-password is too short; please enter it again."
            )
        question = QuestionState(
            id=Q_ADMIN_PASSWORD,
            kind=QuestionKind.INPUT,
            prompt="Enter your Admin password:",
            secret=True,
        )
        while True:
            password = (await prompter.input(STEP_DATABASE, question)).strip()
            if not password:
                await emitter.warn(STEP_DATABASE, "Password cannot be empty. Please try again.")
            elif len(password) < MIN_ADMIN_PASSWORD_LENGTH:
                await emitter.warn(
                    STEP_DATABASE,
                    f"Password must be at least {MIN_ADMIN_PASSWORD_LENGTH} characters long. Try again.",
                )
            else:
                return password

    async def _collect_admin(self, emitter: EventEmitter, prompter: Prompter) -> AdminAccount:
        opts = self.options
        username = await self._ask_or_use(
            prompter, opts.admin_username, Q_ADMIN_USERNAME, "Enter your Admin username:", DEFAULT_ADMIN_USERNAME
        )
        await emitter.log(STEP_DATABASE, f"Your Admin username: {username}.")

        email = await self._admin_email(emitter, prompter)
        await emitter.log(STEP_DATABASE, f"Your Admin email: {email}.")

        password = await self._admin_password(emitter, prompter)
        await emitter.log(STEP_DATABASE, f"Your Admin password: {SECRET_MASK}.")

        directory = sanitize_admin_directory(
            await self._ask_or_use(
                prompter,
                opts.admin_directory,
                Q_ADMIN_DIRECTORY,
                "Enter your Admin directory:",
                DEFAULT_ADMIN_DIRECTORY,
            )
        )
        await emitter.log(STEP_DATABASE, f"Your Admin directory: {directory}.")

        language = opts.language or await prompter.select(STEP_DATABASE, language_question())
        await emitter.log(STEP_DATABASE, f"Selected language: {language_label(language)}.")

        return AdminAccount(
            username=username,
            email=email,
            password=password,
            directory=directory,
            language=language,
        )

    # Installer console

    async def _install(
        self, emitter: EventEmitter, work_dir: str, db: DatabaseConfig, admin: AdminAccount
    ) -> bool:
        await emitter.step_start(STEP_DOWNLOAD)
        supervisor = InstallSupervisor(emitter)
        try:
            argv = self.platform.installer_command(installer_arguments(self.options, db, admin))
            await supervisor.run(argv, cwd=work_dir, env=installer_environment(db.type))
        except OperationCancelled:
            raise
        except InstallerError as exc:
            await supervisor.apply(supervisor.tracker.fail_remaining())
            logger.warning(f"Installer console failed: {exc}")
            await emitter.error(STEP_DOWNLOAD, GLOBAL_FAILURE_MESSAGE, {"error": str(exc)})
            return False
        return True
