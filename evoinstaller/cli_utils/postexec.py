"""Running a command the engine asked for after it finished."""

from __future__ import annotations

import errno
import logging
import subprocess
from typing import List

logger = logging.getLogger(__name__)


def run_post_exec(argv: List[str], php_binary: str = "php") -> int:
    """Run ``argv`` with inherited stdio and return its exit code.

    Scripts that cannot be executed directly are retried through
    ``php <script>``.
    """

    if not argv:
        return 0
    try:
        return subprocess.run(argv, check=False).returncode
    except OSError as exc:
        if not isinstance(exc, PermissionError) and exc.errno not in (errno.ENOEXEC, errno.EACCES):
            raise
        logger.debug(f"Retrying {argv[0]} through {php_binary}: {exc}")
    return subprocess.run([php_binary, *argv], check=False).returncode
