"""Collectors producing build-info fragments.

Module collectors read a build tool's project files; the environment
collector snapshots process environment variables. Each collector call
persists exactly one fragment.
"""

from buildinfo_accumulator.collectors.environment import (
    ENV_PREFIX,
    collect_environment,
    environment_fragment,
    vcs_fragment,
)
from buildinfo_accumulator.collectors.modules import (
    MODULE_COLLECTORS,
    GenericModule,
    GoModule,
    GradleModule,
    MavenModule,
    ModuleCollector,
)

__all__ = [
    "ENV_PREFIX",
    "MODULE_COLLECTORS",
    "GenericModule",
    "GoModule",
    "GradleModule",
    "MavenModule",
    "ModuleCollector",
    "collect_environment",
    "environment_fragment",
    "vcs_fragment",
]
