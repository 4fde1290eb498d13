"""Release version of the token state package."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class SemanticVersion:
    """A major.minor.patch version number."""

    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"v{self.major}.{self.minor}.{self.patch}"


VERSION = SemanticVersion(major=0, minor=0, patch=1)