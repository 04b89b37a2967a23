"""Semantic version parsing and comparison."""

from __future__ import annotations

import re
from typing import Optional, Tuple

from pydantic import BaseModel

_SEMVER_SEARCH = re.compile(r"(\d+)\.(\d+)\.(\d+)")
_SEMVER_PREFIX = re.compile(r"^[vV]?(\d+)\.(\d+)\.(\d+)")


class SemanticVersion(BaseModel):
    """Semantic version with ``major.minor.patch`` components."""

    major: int
    minor: int
    patch: int

    @classmethod
    def search(cls, value: str) -> Optional["SemanticVersion"]:
        """Find the first ``M.m.p`` triple anywhere in ``value``."""
        match = _SEMVER_SEARCH.search(value or "")
        if not match:
            return None
        return cls(major=int(match[1]), minor=int(match[2]), patch=int(match[3]))

    @classmethod
    def parse_prefix(cls, value: str) -> Optional["SemanticVersion"]:
        """Parse a leading version, tolerating suffixes like ``8.3.0RC1``."""
        match = _SEMVER_PREFIX.match((value or "").strip())
        if not match:
            return None
        return cls(major=int(match[1]), minor=int(match[2]), patch=int(match[3]))

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: "SemanticVersion") -> bool:
        return self.as_tuple() < other.as_tuple()

    def __le__(self, other: "SemanticVersion") -> bool:
        return self.as_tuple() <= other.as_tuple()

    def __gt__(self, other: "SemanticVersion") -> bool:
        return self.as_tuple() > other.as_tuple()

    def __ge__(self, other: "SemanticVersion") -> bool:
        return self.as_tuple() >= other.as_tuple()

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"
