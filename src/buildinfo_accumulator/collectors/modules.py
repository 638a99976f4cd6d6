"""Module collectors: per-build-tool adapters producing one module fragment each.

A collector is bound to the Build that created it and to a source path.
``collect()`` asks the tool-specific ``extract()`` hook for the module's
metadata, overlays whatever the caller attached (properties, artifacts,
dependencies) and persists the result as a single ``module`` fragment.

If extraction fails the error propagates unchanged and nothing is written;
fragments of other modules are unaffected.

Supported tools:
- Go: reads go.mod (module path, require directives)
- Maven: reads pom.xml; also reserves a file for the Maven build-info extractor
- Gradle: reads settings.gradle and gradle.properties; also reserves an
  extractor file
- Generic: no files, the caller names the module
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import TYPE_CHECKING

from buildinfo_accumulator.errors import ModuleExtractionError
from buildinfo_accumulator.logging_config import get_logger
from buildinfo_accumulator.schemas import (
    Artifact,
    Dependency,
    FragmentKind,
    Module,
    ModuleType,
    Partial,
)

if TYPE_CHECKING:
    from buildinfo_accumulator.build import Build

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Base collector
# ---------------------------------------------------------------------------


class ModuleCollector:
    """Base class for every module collector.

    Subclasses implement ``extract()``. Everything else (caller-supplied
    overrides, persisting the fragment) is shared.

    Usage:
        module = build.add_go_module("services/api")
        module.add_properties({"go.version": "1.22"})
        module.collect()
    """

    module_type = ModuleType.GENERIC

    def __init__(self, build: Build, src_path: str | Path = "", module_id: str | None = None) -> None:
        """Bind the collector to a build and a source directory.

        Args:
            build: The Build this module belongs to
            src_path: Root of the module's project. Empty means the current
                      working directory.
            module_id: Overrides the id the tool metadata would yield
        """
        self._build = build
        self.src_path = Path(src_path) if src_path else Path.cwd()
        self.module_id = module_id
        self.properties: dict[str, str] = {}
        self.artifacts: list[Artifact] = []
        self.dependencies: list[Dependency] = []

    def add_properties(self, properties: dict[str, str]) -> None:
        self.properties.update(properties)

    def add_artifacts(self, *artifacts: Artifact) -> None:
        self.artifacts.extend(artifacts)

    def add_dependencies(self, *dependencies: Dependency) -> None:
        self.dependencies.extend(dependencies)

    def extract(self) -> Module:
        """Read the tool-specific metadata of the module."""
        raise NotImplementedError

    def to_module(self) -> Module:
        """Extracted metadata with the caller's additions applied on top."""
        extracted = self.extract()
        artifacts = {artifact.name: artifact for artifact in extracted.artifacts}
        artifacts.update({artifact.name: artifact for artifact in self.artifacts})
        dependencies = {dep.id: dep for dep in extracted.dependencies}
        dependencies.update({dep.id: dep for dep in self.dependencies})
        return Module(
            id=self.module_id or extracted.id,
            type=self.module_type,
            properties={**extracted.properties, **self.properties},
            artifacts=list(artifacts.values()),
            dependencies=list(dependencies.values()),
        )

    def collect(self) -> Module:
        """Extract the module and persist it as a fragment of the build.

        Returns:
            The module that was persisted

        Raises:
            ModuleExtractionError: If the tool metadata cannot be read
            StagingIOError: If the fragment cannot be written
        """
        module = self.to_module()
        self._build.save_partial(Partial(kind=FragmentKind.MODULE, module=module))
        logger.info(
            "module_collected",
            build=self._build.identity.label(),
            module_id=module.id,
            module_type=module.type.value,
            dependencies=len(module.dependencies),
        )
        return module

    def _read(self, filename: str) -> str:
        path = self.src_path / filename
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ModuleExtractionError(
                f"No {filename} found in {self.src_path}"
            ) from exc
        except OSError as exc:
            raise ModuleExtractionError(f"Cannot read {path}: {exc}") from exc


class GenericModule(ModuleCollector):
    """A module whose id is supplied by the caller rather than read from files."""

    def __init__(self, build: Build, src_path: str | Path = "", module_id: str | None = None) -> None:
        super().__init__(build, src_path, module_id)
        if not module_id:
            raise ModuleExtractionError("A generic module needs an explicit module id")

    def extract(self) -> Module:
        return Module(id=self.module_id, type=self.module_type)


# ---------------------------------------------------------------------------
# Go
# ---------------------------------------------------------------------------

_GO_MODULE_RE = re.compile(r'^module\s+"?([^"\s]+)"?')
_GO_REQUIRE_LINE_RE = re.compile(r'^"?([^"\s]+)"?\s+(\S+)')


def parse_go_mod(content: str) -> tuple[str, list[Dependency]]:
    """Parse the module path and required modules out of a go.mod file.

    Returns:
        (module path, dependencies). Dependencies marked ``// indirect``
        carry the ``indirect`` scope.

    Raises:
        ModuleExtractionError: If there is no module directive
    """
    module_path = ""
    dependencies: list[Dependency] = []
    in_require_block = False

    for raw_line in content.splitlines():
        line, _, comment = raw_line.partition("//")
        line = line.strip()
        indirect = comment.strip() == "indirect"
        if not line:
            continue

        if in_require_block:
            if line == ")":
                in_require_block = False
                continue
            requirement = line
        elif line.startswith("module"):
            match = _GO_MODULE_RE.match(line)
            if match:
                module_path = match.group(1)
            continue
        elif line == "require (" or line == "require(":
            in_require_block = True
            continue
        elif line.startswith("require "):
            requirement = line[len("require "):].strip()
        else:
            continue

        match = _GO_REQUIRE_LINE_RE.match(requirement)
        if match:
            name, version = match.groups()
            dependencies.append(
                Dependency(
                    id=f"{name}:{version}",
                    type="zip",
                    scopes=["indirect"] if indirect else [],
                )
            )

    if not module_path:
        raise ModuleExtractionError("go.mod has no module directive")
    return module_path, dependencies


class GoModule(ModuleCollector):
    """Collects a Go module from its go.mod file."""

    module_type = ModuleType.GO

    def extract(self) -> Module:
        module_path, dependencies = parse_go_mod(self._read("go.mod"))
        return Module(id=module_path, type=self.module_type, dependencies=dependencies)


# ---------------------------------------------------------------------------
# Maven
# ---------------------------------------------------------------------------


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> str:
    for child in element:
        if _local_name(child.tag) == name and child.text:
            return child.text.strip()
    return ""


def _child(element: ET.Element, name: str) -> ET.Element | None:
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def parse_pom(content: str) -> tuple[str, list[Dependency]]:
    """Parse ``groupId:artifactId:version`` and declared dependencies of a pom.xml.

    groupId and version fall back to the parent's when the project omits them.
    Property references such as ``${project.version}`` are kept verbatim.

    Raises:
        ModuleExtractionError: If the XML is invalid or has no artifactId
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ModuleExtractionError(f"Invalid pom.xml: {exc}") from exc

    parent = _child(root, "parent")
    group_id = _child_text(root, "groupId") or (_child_text(parent, "groupId") if parent is not None else "")
    version = _child_text(root, "version") or (_child_text(parent, "version") if parent is not None else "")
    artifact_id = _child_text(root, "artifactId")
    if not artifact_id:
        raise ModuleExtractionError("pom.xml has no artifactId")

    dependencies = []
    declared = _child(root, "dependencies")
    if declared is not None:
        for dep in declared:
            if _local_name(dep.tag) != "dependency":
                continue
            coordinates = [_child_text(dep, "groupId"), _child_text(dep, "artifactId")]
            dep_version = _child_text(dep, "version")
            if dep_version:
                coordinates.append(dep_version)
            dependencies.append(
                Dependency(
                    id=":".join(coordinates),
                    type=_child_text(dep, "type") or "jar",
                    scopes=[_child_text(dep, "scope") or "compile"],
                )
            )

    return ":".join(part for part in (group_id, artifact_id, version) if part), dependencies


class _ExtractorModule(ModuleCollector):
    """A module whose build tool can also run a build-info extractor.

    The extractor writes a complete build-info document to ``output_path``.
    The file is reserved in the build's staging area the first time the path
    is asked for, never on construction. Those documents are appended to the
    consolidated build-info.
    """

    def __init__(self, build: Build, src_path: str | Path = "", module_id: str | None = None) -> None:
        super().__init__(build, src_path, module_id)
        self._output_path: str | None = None

    @property
    def output_path(self) -> str:
        if self._output_path is None:
            self._output_path = self._build.reserve_generated_document()
        return self._output_path


class MavenModule(_ExtractorModule):
    """Collects a Maven module from its pom.xml."""

    module_type = ModuleType.MAVEN

    def extract(self) -> Module:
        module_id, dependencies = parse_pom(self._read("pom.xml"))
        return Module(id=module_id, type=self.module_type, dependencies=dependencies)


# ---------------------------------------------------------------------------
# Gradle
# ---------------------------------------------------------------------------

_ROOT_PROJECT_RE = re.compile(r'rootProject\.name\s*=\s*["\']([^"\']+)["\']')
_PROPERTY_RE = re.compile(r"^\s*([\w.]+)\s*[=:]\s*(.*?)\s*$")


def _gradle_properties(content: str) -> dict[str, str]:
    properties = {}
    for line in content.splitlines():
        if line.lstrip().startswith(("#", "!")):
            continue
        match = _PROPERTY_RE.match(line)
        if match:
            properties[match.group(1)] = match.group(2)
    return properties


class GradleModule(_ExtractorModule):
    """Collects a Gradle module from settings.gradle and gradle.properties.

    The module id is ``group:name:version`` where name comes from
    ``rootProject.name`` (or the directory name), and group and version come
    from gradle.properties when it defines them.
    """

    module_type = ModuleType.GRADLE

    def extract(self) -> Module:
        name = ""
        for settings in ("settings.gradle", "settings.gradle.kts"):
            if (self.src_path / settings).is_file():
                match = _ROOT_PROJECT_RE.search(self._read(settings))
                if match:
                    name = match.group(1)
                break
        if not name:
            name = self.src_path.resolve().name
        if not name:
            raise ModuleExtractionError(f"Cannot determine Gradle project name for {self.src_path}")

        properties = {}
        if (self.src_path / "gradle.properties").is_file():
            properties = _gradle_properties(self._read("gradle.properties"))
        parts = (properties.get("group", ""), name, properties.get("version", ""))
        return Module(id=":".join(part for part in parts if part), type=self.module_type)


MODULE_COLLECTORS: dict[ModuleType, type[ModuleCollector]] = {
    ModuleType.GO: GoModule,
    ModuleType.MAVEN: MavenModule,
    ModuleType.GRADLE: GradleModule,
    ModuleType.GENERIC: GenericModule,
}
