"""Error taxonomy for staging and consolidating build-info fragments.

None of these errors is retried internally. Filesystem faults are treated as
non-transient at this layer, and a build record that is missing data is worse
than no record at all, so every error is propagated to the caller, who owns
any retry policy.

    BuildInfoError
    ├── StagingIOError          (also an OSError) staging dir unreachable, disk/permission faults
    ├── MalformedIdentityError  (also a ValueError) empty build name or number
    ├── CorruptFragmentError    one fragment file failed to deserialize
    │   └── UnreadableFragmentError  one fragment file could not be read at all
    ├── ConsolidationError      consolidation aborted, wraps a CorruptFragmentError
    └── ModuleExtractionError   a collector could not read its tool's metadata
"""

from __future__ import annotations

from pathlib import Path


class BuildInfoError(Exception):
    """Base class for every error raised by this package."""


class StagingIOError(BuildInfoError, OSError):
    """The staging directory or a file in it could not be created, written or removed."""


class MalformedIdentityError(BuildInfoError, ValueError):
    """A build identity is missing a required component."""


class CorruptFragmentError(BuildInfoError):
    """A single fragment file could not be deserialized.

    Attributes:
        path: The offending fragment file
    """

    problem = "Corrupt"

    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.problem} fragment {self.path.name}: {reason}")


class UnreadableFragmentError(CorruptFragmentError):
    """A fragment file exists but reading it failed, e.g. permission denied."""

    problem = "Unreadable"


class ConsolidationError(BuildInfoError):
    """Consolidation was aborted because a fragment could not be read.

    Attributes:
        fragment_path: The first unreadable fragment encountered
    """

    def __init__(self, fragment_path: str | Path, reason: str) -> None:
        self.fragment_path = Path(fragment_path)
        super().__init__(
            f"Cannot consolidate build: fragment {self.fragment_path} is unreadable ({reason})"
        )


class ModuleExtractionError(BuildInfoError):
    """A module collector could not extract its tool-specific metadata."""
