"""Pydantic models describing build identities, fragments and build-info documents.

These schemas are the on-disk and in-memory contract shared by every process
that contributes to one build:
- A BuildIdentity names the staging namespace all fragments go into
- A Partial is one fragment, self-describing through its ``kind`` tag
- A BuildInfo is the consolidated document that downstream publishers consume

Key design decisions:
- Fragments are written and read with the same models, so a fragment written
  by any collector version is readable as long as the kind tags match
- Unknown fields in a fragment are ignored, not rejected
- BuildInfo serializes with the conventional camelCase build-info names
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from buildinfo_accumulator.errors import MalformedIdentityError

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ModuleType(str, Enum):
    """Build tool that produced a module."""

    GO = "go"
    MAVEN = "maven"
    GRADLE = "gradle"
    GENERIC = "generic"


class FragmentKind(str, Enum):
    """Which section of the build-info document a fragment contributes to.

    MODULE: One module descriptor (id, type, properties, artifacts, dependencies)
    ENVIRONMENT: A snapshot of namespace-prefixed environment variables
    VCS: Source control details for the checkout being built
    """

    MODULE = "module"
    ENVIRONMENT = "environment"
    VCS = "vcs"


# ---------------------------------------------------------------------------
# Build Identity
# ---------------------------------------------------------------------------


class BuildIdentity(BaseModel):
    """The (build name, build number, project key) tuple naming one build.

    Every process contributing to the same build must construct an equal
    identity, since the staging directory is derived from it.

    Attributes:
        build_name: Name of the build (e.g., "backend-api")
        build_number: Build number or run id (e.g., "42")
        project_key: Optional project key; empty in single-tenant mode
    """

    model_config = ConfigDict(frozen=True)

    build_name: str
    build_number: str
    project_key: str = ""

    @classmethod
    def create(
        cls, build_name: str, build_number: str, project_key: str = ""
    ) -> BuildIdentity:
        """Build a validated identity.

        Raises:
            MalformedIdentityError: If build name or build number is empty
        """
        identity = cls(
            build_name=build_name or "",
            build_number=build_number or "",
            project_key=project_key or "",
        )
        identity.validate_components()
        return identity

    def validate_components(self) -> None:
        """Reject identities without a build name or build number."""
        missing = [
            label
            for label, value in (
                ("build name", self.build_name),
                ("build number", self.build_number),
            )
            if not value.strip()
        ]
        if missing:
            raise MalformedIdentityError(
                f"Build identity is missing: {', '.join(missing)}"
            )

    def label(self) -> str:
        """Human-readable name used in log events."""
        if self.project_key:
            return f"{self.project_key}/{self.build_name}/{self.build_number}"
        return f"{self.build_name}/{self.build_number}"

    def key(self) -> str:
        """Stable directory name for this build's staging area."""
        raw = json.dumps([self.build_name, self.build_number, self.project_key])
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Module contents
# ---------------------------------------------------------------------------


class Checksum(BaseModel):
    """Checksums of a file. Any of them may be empty."""

    sha1: str = ""
    sha256: str = ""
    md5: str = ""


class Dependency(BaseModel):
    """A single dependency of a module.

    Attributes:
        id: Tool-specific coordinates (e.g., "golang.org/x/text:v0.3.7")
        type: Packaging type, if known
        scopes: Scopes the dependency belongs to (e.g., "compile", "indirect")
        checksum: Checksums of the resolved file
        requested_by: Chains of dependency ids that pulled this one in
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str = ""
    scopes: list[str] = Field(default_factory=list)
    checksum: Checksum = Field(default_factory=Checksum)
    requested_by: list[list[str]] = Field(default_factory=list, alias="requestedBy")


class Artifact(BaseModel):
    """A file produced by a module."""

    name: str
    type: str = ""
    path: str = ""
    checksum: Checksum = Field(default_factory=Checksum)


class Module(BaseModel):
    """One module of a build, as recorded by a single collector.

    Attributes:
        id: Module identifier, unique within a build
        type: Which build tool produced it
        properties: Free-form string properties
        artifacts: Files the module produced
        dependencies: Dependencies the module resolved
    """

    id: str = Field(..., min_length=1)
    type: ModuleType = ModuleType.GENERIC
    properties: dict[str, str] = Field(default_factory=dict)
    artifacts: list[Artifact] = Field(default_factory=list)
    dependencies: list[Dependency] = Field(default_factory=list)


class Vcs(BaseModel):
    """Source control details for the checkout being built."""

    url: str = ""
    revision: str = ""
    branch: str = ""
    message: str = ""


# ---------------------------------------------------------------------------
# Fragments
# ---------------------------------------------------------------------------


class Partial(BaseModel):
    """One fragment of partial build metadata.

    A fragment carries exactly the payload matching its kind. The timestamp
    is stamped by the fragment store when the fragment is saved.
    """

    kind: FragmentKind
    timestamp: int = 0
    module: Module | None = None
    env: dict[str, str] | None = None
    vcs: Vcs | None = None

    @model_validator(mode="after")
    def check_payload_matches_kind(self) -> Partial:
        """Ensure the fragment carries the payload its kind promises."""
        payloads = {
            FragmentKind.MODULE: self.module,
            FragmentKind.ENVIRONMENT: self.env,
            FragmentKind.VCS: self.vcs,
        }
        if payloads[self.kind] is None:
            raise ValueError(f"Fragment of kind {self.kind.value!r} has no payload")
        extra = [kind.value for kind, value in payloads.items() if kind != self.kind and value is not None]
        if extra:
            raise ValueError(
                f"Fragment of kind {self.kind.value!r} also carries: {', '.join(extra)}"
            )
        return self


# ---------------------------------------------------------------------------
# Consolidated Document
# ---------------------------------------------------------------------------


class Agent(BaseModel):
    """Name and version of a tool that took part in the build."""

    name: str = ""
    version: str = ""


class BuildInfo(BaseModel):
    """The consolidated build-information document.

    Built by folding every fragment of a build, then overlaid with the
    presentation fields (agent, build agent, principal, url) known only to
    the consolidating process.

    Attributes:
        name: Build name
        number: Build number
        project: Project key, empty in single-tenant mode
        started: Consolidation time in build-info format
        agent: The CI agent driving the build
        build_agent: The build tool integration that produced the document
        principal: Who triggered the build
        url: Link to the CI run
        modules: Modules, sorted by id
        properties: Environment mapping with namespace-prefixed keys
        vcs: Source control entries
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    number: str = ""
    project: str = ""
    started: str = ""
    agent: Agent = Field(default_factory=Agent)
    build_agent: Agent = Field(default_factory=Agent, alias="buildAgent")
    principal: str = ""
    url: str = ""
    modules: list[Module] = Field(default_factory=list)
    properties: dict[str, str] = Field(default_factory=dict)
    vcs: list[Vcs] = Field(default_factory=list)

    def set_agent_name(self, name: str) -> None:
        self.agent.name = name

    def set_agent_version(self, version: str) -> None:
        self.agent.version = version

    def set_build_agent_version(self, version: str) -> None:
        self.build_agent.version = version

    def is_empty(self) -> bool:
        """True when no fragment contributed anything."""
        return not (self.modules or self.properties or self.vcs)

    def append(self, other: BuildInfo) -> None:
        """Merge another document's modules, properties and vcs into this one."""
        # Imported here, merge depends on this module.
        from buildinfo_accumulator.merge import merge_modules, merge_vcs

        self.modules = merge_modules([*self.modules, *other.modules])
        self.properties = dict(sorted({**self.properties, **other.properties}.items()))
        self.vcs = merge_vcs([*self.vcs, *other.vcs])

    def to_json(self) -> str:
        """Serialize with the conventional build-info field names."""
        return self.model_dump_json(by_alias=True, indent=2)
