"""Merge engine folding fragments into one build-info document.

The fold runs over fragments in load order, i.e. (timestamp, file name):
- Module fragments are keyed by module id. A second fragment for the same id
  is merged on top of the first: its properties override per key, its
  artifacts and dependencies are unioned with the earlier ones (by name and
  id, later wins). Collecting a module twice is not expected, but it must
  not crash consolidation.
- Environment fragments are unioned into one mapping, later keys win.
- VCS fragments are unioned by (url, revision).

The output is sorted (modules by id, environment by key, vcs by url and
revision), so for non-conflicting fragments the document does not depend on
the order in which the fragments were written.

Consolidation is fail-fast: the first unreadable fragment aborts it with a
ConsolidationError. Publishing a build record that silently lacks a module
is judged worse than failing loudly.
"""

from __future__ import annotations

from collections.abc import Iterable

from buildinfo_accumulator.errors import ConsolidationError, CorruptFragmentError
from buildinfo_accumulator.logging_config import get_logger
from buildinfo_accumulator.schemas import (
    BuildIdentity,
    BuildInfo,
    FragmentKind,
    Module,
    Partial,
    Vcs,
)
from buildinfo_accumulator.store import FragmentStore

logger = get_logger(__name__)


def _merge_module(earlier: Module, later: Module) -> Module:
    artifacts = {artifact.name: artifact for artifact in earlier.artifacts}
    artifacts.update({artifact.name: artifact for artifact in later.artifacts})
    dependencies = {dep.id: dep for dep in earlier.dependencies}
    dependencies.update({dep.id: dep for dep in later.dependencies})
    return Module(
        id=later.id,
        type=later.type,
        properties={**earlier.properties, **later.properties},
        artifacts=list(artifacts.values()),
        dependencies=list(dependencies.values()),
    )


def merge_modules(modules: Iterable[Module]) -> list[Module]:
    """Fold modules by id, later ones merged on top of earlier ones."""
    merged: dict[str, Module] = {}
    for module in modules:
        if module.id in merged:
            logger.warning("duplicate_module_merged", module_id=module.id)
            merged[module.id] = _merge_module(merged[module.id], module)
        else:
            merged[module.id] = module
    return [merged[module_id] for module_id in sorted(merged)]


def merge_vcs(entries: Iterable[Vcs]) -> list[Vcs]:
    """Union VCS entries by (url, revision), later ones win."""
    merged: dict[tuple[str, str], Vcs] = {}
    for entry in entries:
        merged[(entry.url, entry.revision)] = entry
    return [merged[key] for key in sorted(merged)]


def merge_partials(identity: BuildIdentity, partials: Iterable[Partial]) -> BuildInfo:
    """Fold fragments, given in load order, into a skeleton document.

    Only the sections fragments can carry (modules, environment, vcs) and the
    build identity are filled in; presentation fields are left empty.
    """
    modules: list[Module] = []
    env: dict[str, str] = {}
    vcs: list[Vcs] = []

    for partial in partials:
        if partial.kind == FragmentKind.MODULE and partial.module is not None:
            modules.append(partial.module)
        elif partial.kind == FragmentKind.ENVIRONMENT and partial.env is not None:
            env.update(partial.env)
        elif partial.kind == FragmentKind.VCS and partial.vcs is not None:
            vcs.append(partial.vcs)

    return BuildInfo(
        name=identity.build_name,
        number=identity.build_number,
        project=identity.project_key,
        modules=merge_modules(modules),
        properties=dict(sorted(env.items())),
        vcs=merge_vcs(vcs),
    )


def consolidate(store: FragmentStore, identity: BuildIdentity) -> BuildInfo:
    """Load every fragment and generated document of a build and merge them.

    A build with no fragments yields an empty but valid document.

    Raises:
        ConsolidationError: If any fragment or generated document is corrupt
            or cannot be read
        StagingIOError: If the staging area cannot be read
    """
    try:
        fragments = store.load_all_fragments(identity)
        generated = store.load_generated_documents(identity)
    except CorruptFragmentError as exc:
        logger.error(
            "consolidation_failed",
            build=identity.label(),
            fragment=str(exc.path),
            reason=exc.reason,
        )
        raise ConsolidationError(exc.path, exc.reason) from exc

    build_info = merge_partials(identity, (fragment.partial for fragment in fragments))
    for document in generated:
        build_info.append(document)

    if build_info.is_empty():
        logger.info("empty_build_consolidated", build=identity.label())
    else:
        logger.info(
            "build_consolidated",
            build=identity.label(),
            fragments=len(fragments),
            generated_documents=len(generated),
            modules=len(build_info.modules),
            env_vars=len(build_info.properties),
        )
    return build_info
