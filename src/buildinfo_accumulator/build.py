"""Build accumulator: the entry point for recording and consolidating one build.

A Build is constructed once per build identity in every process that takes
part in the build. Collectors created through it write fragments to the
shared staging area; any process can later call ``to_build_info()`` to fold
them into the final document, and ``clean()`` to drop the staging area.

Agent name and version, build-agent version, principal and build URL are
kept in memory only. They are never written as fragments, so contributing
processes do not need to know them: only the consolidating process sets
them, and they appear only in that instance's ``to_build_info()`` output.

Usage:
    build = Build("backend-api", "42", temp_dir="/tmp/buildinfo")
    build.add_go_module("services/api").collect()
    build.collect_env()

    # later, possibly in another process
    build = Build("backend-api", "42", temp_dir="/tmp/buildinfo")
    build.set_agent_name("github-actions")
    document = build.to_build_info()
    build.clean()
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path

from buildinfo_accumulator.collectors.environment import environment_fragment, vcs_fragment
from buildinfo_accumulator.collectors.modules import (
    MODULE_COLLECTORS,
    GoModule,
    GradleModule,
    MavenModule,
    ModuleCollector,
)
from buildinfo_accumulator.config import default_temp_dir
from buildinfo_accumulator.logging_config import get_logger
from buildinfo_accumulator.merge import consolidate
from buildinfo_accumulator.schemas import BuildIdentity, BuildInfo, ModuleType, Partial
from buildinfo_accumulator.store import FragmentStore

logger = get_logger(__name__)

STARTED_FORMAT = "%Y-%m-%dT%H:%M:%S.000%z"


class Build:
    """Accumulates the fragments of one build and consolidates them."""

    def __init__(
        self,
        build_name: str,
        build_number: str,
        project_key: str = "",
        temp_dir: str | Path | None = None,
        store: FragmentStore | None = None,
    ) -> None:
        """Validate the identity and create its staging area.

        Args:
            build_name: Name of the build
            build_number: Number of the build
            project_key: Optional project key
            temp_dir: Root of the staging areas; defaults to the configured one
            store: Fragment store to use instead of one rooted at temp_dir

        Raises:
            MalformedIdentityError: If build name or number is empty
            StagingIOError: If the staging area cannot be created
        """
        self.identity = BuildIdentity.create(build_name, build_number, project_key)
        self.store = store or FragmentStore(temp_dir if temp_dir is not None else default_temp_dir())
        self.staging_dir = self.store.create_staging_area(self.identity)

        self._agent_name = ""
        self._agent_version = ""
        self._build_agent_version = ""
        self._principal = ""
        self._build_url = ""

    # -----------------------------------------------------------------------
    # In-memory-only fields
    # -----------------------------------------------------------------------

    # These are not saved as fragments. They are applied only by
    # to_build_info() on this instance.
    def set_agent_name(self, agent_name: str) -> None:
        self._agent_name = agent_name

    def set_agent_version(self, agent_version: str) -> None:
        self._agent_version = agent_version

    def set_build_agent_version(self, build_agent_version: str) -> None:
        self._build_agent_version = build_agent_version

    def set_principal(self, principal: str) -> None:
        self._principal = principal

    def set_build_url(self, build_url: str) -> None:
        self._build_url = build_url

    # -----------------------------------------------------------------------
    # Collectors
    # -----------------------------------------------------------------------

    def add_module(
        self,
        kind: ModuleType | str,
        src_path: str | Path = "",
        module_id: str | None = None,
    ) -> ModuleCollector:
        """Create a collector for a module of the given build tool.

        No fragment is written until the collector's ``collect()`` is called.
        Pass an empty src_path if the project root is the working directory.
        """
        collector_cls = MODULE_COLLECTORS[ModuleType(kind)]
        return collector_cls(self, src_path, module_id)

    def add_go_module(self, src_path: str | Path = "") -> GoModule:
        return GoModule(self, src_path)

    def add_maven_module(self, src_path: str | Path = "") -> MavenModule:
        return MavenModule(self, src_path)

    def add_gradle_module(self, src_path: str | Path = "") -> GradleModule:
        return GradleModule(self, src_path)

    def collect_env(
        self,
        environ: Mapping[str, str] | None = None,
        include: Sequence[str] | None = None,
        exclude: Sequence[str] | None = None,
    ) -> Path:
        """Snapshot the process environment and persist it as a fragment.

        Args:
            environ: Variables to capture instead of os.environ
            include: Glob patterns of names to capture
            exclude: Glob patterns of names to skip; None skips nothing
        """
        partial = environment_fragment(environ, include=include, exclude=exclude)
        path = self.save_partial(partial)
        logger.info(
            "environment_collected",
            build=self.identity.label(),
            variables=len(partial.env or {}),
        )
        return path

    def collect_vcs(self, url: str, revision: str, branch: str = "", message: str = "") -> Path:
        """Persist the source control details of the build as a fragment."""
        return self.save_partial(vcs_fragment(url, revision, branch=branch, message=message))

    def save_partial(self, partial: Partial) -> Path:
        return self.store.save_fragment(self.identity, partial)

    def reserve_generated_document(self) -> str:
        return self.store.reserve_generated_document(self.identity)

    # -----------------------------------------------------------------------
    # Consolidation
    # -----------------------------------------------------------------------

    def to_build_info(self) -> BuildInfo:
        """Merge every fragment of this build and apply the in-memory fields.

        Raises:
            ConsolidationError: If any fragment is corrupt
            StagingIOError: If the staging area cannot be read
        """
        try:
            build_info = consolidate(self.store, self.identity)
        except Exception as e:
            logger.error(
                "build_info_failed",
                build=self.identity.label(),
                error=str(e),
                exc_info=True,
            )
            raise

        build_info.started = datetime.now(timezone.utc).astimezone().strftime(STARTED_FORMAT)
        build_info.set_agent_name(self._agent_name)
        build_info.set_agent_version(self._agent_version)
        build_info.set_build_agent_version(self._build_agent_version)
        build_info.principal = self._principal
        build_info.url = self._build_url
        return build_info

    def clean(self) -> None:
        """Remove the staging area with every fragment of this build."""
        self.store.purge(self.identity)
