"""evoinstaller: headless install orchestration for Evolution CMS."""

from .channels import open_channels
from .config import InstallerConfig, InstallOptions, load_config
from .contracts import Action, Event, EventType
from .engine import BaseEngine, InstallEngine, SimulationEngine, get_engine
from .reporting import EventLogger, ReportConfig
from .utils.cancel import CancelToken

__version__ = "0.1.0"
__all__ = [
    "Action",
    "BaseEngine",
    "CancelToken",
    "Event",
    "EventLogger",
    "EventType",
    "InstallEngine",
    "InstallOptions",
    "InstallerConfig",
    "ReportConfig",
    "SimulationEngine",
    "get_engine",
    "load_config",
    "open_channels",
]
