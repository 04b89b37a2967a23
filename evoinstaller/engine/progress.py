"""Maps package-manager console output to a monotonic percentage."""

from __future__ import annotations

import re
from typing import Callable, List, Optional, Tuple, Union

ERROR_HINT = re.compile(r"\b(failed|fatal|error|could not|permission denied)\b", re.I)

_DOWNLOADING_CAP = 60
_INSTALLING_CAP = 85


class ProgressMapper:
    """Turns console lines into progress readings that never decrease.

    Fixed phases jump to a known percentage. The downloading and installing
    phases are ranged: the first matching line sets a floor and each later
    one climbs by one point until the phase cap.
    """

    def __init__(self) -> None:
        self.last = 0
        self._seen_downloading = False
        self._seen_installing = False
        # Order matters: first match wins.
        self._phases: List[Tuple[re.Pattern, Union[int, Callable[[], Optional[int]]]]] = [
            (re.compile(r"\bloading composer repositories\b", re.I), 5),
            (re.compile(r"\breading .*composer\.json\b", re.I), 8),
            (re.compile(r"\bupdating dependencies\b", re.I), 15),
            (re.compile(r"\bresolving dependencies\b", re.I), 20),
            (re.compile(r"\bwriting lock file\b", re.I), 35),
            (re.compile(r"\bpackage operations:\s*\d+\s+install(?:s)?\b", re.I), 45),
            (re.compile(r"\bdownloading.*from cache\b", re.I), self._downloading_from_cache),
            (re.compile(r"\bdownloading\b", re.I), self._downloading),
            (re.compile(r"\binstalling\b", re.I), self._installing),
            (re.compile(r"\bgenerating autoload files\b", re.I), 90),
            (re.compile(r"\bno changes required\b", re.I), 95),
        ]

    def observe(self, line: str) -> Optional[int]:
        """Return the new percentage, or ``None`` when the line changes nothing."""
        if not line or ERROR_HINT.search(line):
            return None
        for pattern, effect in self._phases:
            if pattern.search(line):
                if isinstance(effect, int):
                    return self.advance_to(effect)
                return effect()
        return None

    def advance_to(self, target: int) -> Optional[int]:
        target = max(0, min(100, target))
        if target <= self.last:
            return None
        self.last = target
        return target

    def _downloading_from_cache(self) -> Optional[int]:
        if not self._seen_downloading:
            self._seen_downloading = True
            return self.advance_to(min(_DOWNLOADING_CAP, max(self.last, 55)))
        return self._climb(_DOWNLOADING_CAP)

    def _downloading(self) -> Optional[int]:
        if not self._seen_downloading:
            self._seen_downloading = True
            return self.advance_to(max(self.last, 30))
        return self._climb(_DOWNLOADING_CAP)

    def _installing(self) -> Optional[int]:
        if not self._seen_installing:
            self._seen_installing = True
            return self.advance_to(max(self.last, 60))
        return self._climb(_INSTALLING_CAP)

    def _climb(self, cap: int) -> Optional[int]:
        if self.last >= cap:
            return None
        return self.advance_to(min(cap, self.last + 1))
