"""Environment collector: snapshots process environment variables into a fragment.

Every captured key is prefixed with ``buildInfo.env.`` so environment
entries never collide with other property sections of the document.
The snapshot is taken once, at call time.
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from fnmatch import fnmatchcase

from buildinfo_accumulator.schemas import FragmentKind, Partial, Vcs

ENV_PREFIX = "buildInfo.env."


def _matches_any(name: str, patterns: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(fnmatchcase(lowered, pattern.lower()) for pattern in patterns)


def collect_environment(
    environ: Mapping[str, str] | None = None,
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
    prefix: str = ENV_PREFIX,
) -> dict[str, str]:
    """Capture environment variables as namespace-prefixed properties.

    Args:
        environ: Variables to capture. Defaults to the current process environment.
        include: Glob patterns a name must match to be captured. Empty or
                 None captures every name.
        exclude: Glob patterns of names never captured. Empty or None
                 excludes nothing.
        prefix: Namespace tag prepended to each key

    Returns:
        Mapping of prefixed variable names to values
    """
    source = os.environ if environ is None else environ
    captured = {}
    for name, value in source.items():
        if not name:
            continue
        if include and not _matches_any(name, include):
            continue
        if exclude and _matches_any(name, exclude):
            continue
        captured[prefix + name] = value
    return captured


def environment_fragment(
    environ: Mapping[str, str] | None = None,
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
) -> Partial:
    """Wrap an environment snapshot as an ``environment`` fragment."""
    return Partial(
        kind=FragmentKind.ENVIRONMENT,
        env=collect_environment(environ, include=include, exclude=exclude),
    )


def vcs_fragment(url: str, revision: str, branch: str = "", message: str = "") -> Partial:
    """Wrap source control details as a ``vcs`` fragment."""
    return Partial(
        kind=FragmentKind.VCS,
        vcs=Vcs(url=url, revision=revision, branch=branch, message=message),
    )
