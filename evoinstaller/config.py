from __future__ import annotations

import os
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import ExtrasSelection

_TRUTHY = {"1", "true", "yes", "y"}


def env_flag(name: str) -> Optional[bool]:
    """Read a boolean environment flag; ``None`` when unset."""
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in _TRUTHY


class ReleaseConfig(BaseModel):
    """Where release metadata comes from and how long it is cached."""

    owner: str = "evolution-cms"
    repo: str = "evolution"
    installer_repo: str = "installer"
    max_pages: int = 3
    cache_ttl_seconds: int = 3600
    installer_cache_ttl_seconds: int = 12 * 3600
    include_prerelease: bool = False
    cache_dir: Optional[str] = None


class SimulationConfig(BaseModel):
    """Knobs for the simulation engine."""

    speed: float = 1.0
    fail_step: int = 0


class InstallerConfig(BaseModel):
    """Top-level configuration model."""

    php_binary: str = "php"
    installer_entry: Optional[str] = None
    bootstrapper_entry: Optional[str] = None
    release: ReleaseConfig = ReleaseConfig()
    extras_fail_fast: bool = False
    event_buffer: int = 256
    action_buffer: int = 16
    engine: Literal["install", "simulation"] = "install"
    simulation: SimulationConfig = SimulationConfig()
    system_status_timeout: float = 25.0
    extras_list_timeout: float = 120.0


def load_config(path: Optional[str] = None) -> InstallerConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to EVO_INSTALLER_CONFIG
            env variable or 'evo-installer.yaml' in the current directory.
    """

    config_path = path or os.getenv("EVO_INSTALLER_CONFIG", "evo-installer.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = InstallerConfig(**data)
    else:
        config = InstallerConfig()

    fail_fast = env_flag("EVO_EXTRAS_FAIL_FAST")
    if fail_fast is not None:
        config.extras_fail_fast = fail_fast
    engine = os.getenv("EVO_ENGINE")
    if engine:
        config.engine = engine.strip().lower()
    php_binary = os.getenv("EVO_PHP_BIN")
    if php_binary:
        config.php_binary = php_binary
    speed = os.getenv("EVO_MOCK_SPEED")
    if speed:
        try:
            config.simulation.speed = max(float(speed), 0.01)
        except ValueError:
            pass
    fail_step = os.getenv("EVO_MOCK_FAIL_STEP")
    if fail_step:
        try:
            config.simulation.fail_step = int(fail_step)
        except ValueError:
            pass
    return config


class InstallOptions(BaseModel):
    """Everything one install run was asked to do.

    Values supplied here skip the matching question; empty strings mean
    "ask" (or use the default in batch mode).
    """

    model_config = ConfigDict(frozen=True)

    force: bool = False
    dir: str = "."
    self_version: str = ""
    branch: str = ""
    composer_clear_cache: bool = False
    composer_update: bool = False

    db_type: str = ""
    db_host: str = ""
    db_port: int = 0
    db_name: str = ""
    db_user: str = ""
    db_password: str = ""

    admin_username: str = ""
    admin_email: str = ""
    admin_password: str = ""
    admin_directory: str = ""
    language: str = ""

    github_pat: str = ""
    extras: List[ExtrasSelection] = Field(default_factory=list)

    @field_validator(
        "dir",
        "self_version",
        "branch",
        "db_host",
        "db_name",
        "db_user",
        "admin_username",
        "admin_email",
        "admin_directory",
        "github_pat",
    )
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("db_type", "language")
    @classmethod
    def _lower(cls, v: str) -> str:
        return (v or "").strip().lower()

    @property
    def work_dir(self) -> str:
        return self.dir or "."
