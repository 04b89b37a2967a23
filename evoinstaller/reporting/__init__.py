"""Install report generation."""

from __future__ import annotations

from .eventlog import EventLogger, ReportConfig
from .redact import sanitize_message

__all__ = ["EventLogger", "ReportConfig", "sanitize_message"]
