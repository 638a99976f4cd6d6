"""Filesystem-backed storage for build-info fragments.

Each build identity owns one staging directory under a shared root:

    <root>/<sha256 of identity>/
    ├── .details                       empty marker pinning the directory
    ├── partials/<ns>-<uuid>.json      one fragment per file
    └── generated/buildinfo-*.json     documents written by external extractors

The directory works as an append-only log. Many processes may write into it
at the same time without any locking:
- Every fragment gets a unique name (nanosecond timestamp plus a random uuid)
- Fragments are written to a hidden temp file and renamed into place, so a
  reader never sees a half-written fragment
- Nothing but ``purge`` ever deletes a file

A consolidation that runs while writers are still active may miss the
latest fragments, but it never observes a partial one.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from buildinfo_accumulator.errors import (
    CorruptFragmentError,
    StagingIOError,
    UnreadableFragmentError,
)
from buildinfo_accumulator.logging_config import get_logger
from buildinfo_accumulator.schemas import BuildIdentity, BuildInfo, Partial

logger = get_logger(__name__)

MARKER_FILE = ".details"
PARTIALS_DIR = "partials"
GENERATED_DIR = "generated"


def normalize_separators(path: str | Path) -> str:
    """Render a path with ``/`` separators whatever platform produced it."""
    return str(path).replace("\\", "/")


@dataclass
class LoadedFragment:
    """A fragment together with the file it was read from."""

    path: Path
    partial: Partial

    def sort_key(self) -> tuple[int, str]:
        return (self.partial.timestamp, self.path.name)


class FragmentStore:
    """Reads and writes the fragments of any number of builds under one root.

    Usage:
        store = FragmentStore("/tmp/buildinfo")
        identity = BuildIdentity.create("api", "42")
        store.create_staging_area(identity)
        store.save_fragment(identity, Partial(kind=FragmentKind.ENVIRONMENT, env={...}))
        fragments = store.load_all_fragments(identity)
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def build_dir(self, identity: BuildIdentity) -> Path:
        return self._root / identity.key()

    def partials_dir(self, identity: BuildIdentity) -> Path:
        return self.build_dir(identity) / PARTIALS_DIR

    def generated_dir(self, identity: BuildIdentity) -> Path:
        return self.build_dir(identity) / GENERATED_DIR

    # -----------------------------------------------------------------------
    # Writing
    # -----------------------------------------------------------------------

    def create_staging_area(self, identity: BuildIdentity) -> Path:
        """Make sure the staging directory of a build exists.

        Safe to call any number of times, from any number of processes.

        Returns:
            The staging directory

        Raises:
            MalformedIdentityError: If the identity lacks a name or number
            StagingIOError: If the directory cannot be created
        """
        identity.validate_components()
        build_dir = self.build_dir(identity)
        try:
            self.partials_dir(identity).mkdir(parents=True, exist_ok=True)
            self.generated_dir(identity).mkdir(exist_ok=True)
            (build_dir / MARKER_FILE).touch(exist_ok=True)
        except OSError as exc:
            raise StagingIOError(
                f"Cannot create staging area {build_dir}: {exc}"
            ) from exc
        return build_dir

    def save_fragment(self, identity: BuildIdentity, partial: Partial) -> Path:
        """Persist one fragment under a new, unique file name.

        The fragment is stamped with the current time if it carries no
        timestamp yet. Existing fragments are never touched.

        Returns:
            Path of the new fragment file

        Raises:
            StagingIOError: If the fragment cannot be written
        """
        partials_dir = self.create_staging_area(identity) / PARTIALS_DIR
        if not partial.timestamp:
            partial = partial.model_copy(update={"timestamp": time.time_ns()})
        target = partials_dir / f"{partial.timestamp}-{uuid.uuid4().hex}.json"

        tmp_path: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                dir=partials_dir,
                prefix=".",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            ) as tmp:
                tmp_path = tmp.name
                tmp.write(partial.model_dump_json())
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, target)
        except OSError as exc:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StagingIOError(f"Cannot write fragment to {partials_dir}: {exc}") from exc

        logger.debug(
            "fragment_saved",
            build=identity.label(),
            kind=partial.kind.value,
            path=str(target),
        )
        return target

    def reserve_generated_document(self, identity: BuildIdentity) -> str:
        """Create an empty file for an external extractor to write a build-info into.

        Maven and Gradle extractors run inside the build tool and write a
        whole build-info document themselves. They are handed this path;
        until they fill it the file stays empty and is ignored on load.

        Returns:
            The reserved path, with ``/`` separators
        """
        generated_dir = self.create_staging_area(identity) / GENERATED_DIR
        try:
            fd, path = tempfile.mkstemp(dir=generated_dir, prefix="buildinfo-", suffix=".json")
            os.close(fd)
        except OSError as exc:
            raise StagingIOError(
                f"Cannot reserve a build-info file in {generated_dir}: {exc}"
            ) from exc
        return normalize_separators(path)

    # -----------------------------------------------------------------------
    # Reading
    # -----------------------------------------------------------------------

    def load_all_fragments(self, identity: BuildIdentity) -> list[LoadedFragment]:
        """Read every fragment of a build.

        Fragments are returned ordered by (timestamp, file name), which is
        the order the merge engine folds them in.

        Returns:
            The fragments, or an empty list if the build has no staging area

        Raises:
            CorruptFragmentError: For the first fragment that fails to deserialize
            UnreadableFragmentError: If a fragment file cannot be read
        """
        partials_dir = self.partials_dir(identity)
        if not partials_dir.is_dir():
            return []

        fragments = []
        for path in sorted(partials_dir.glob("*.json")):
            fragments.append(LoadedFragment(path=path, partial=self._read_partial(path)))
        fragments.sort(key=LoadedFragment.sort_key)

        logger.debug("fragments_loaded", build=identity.label(), count=len(fragments))
        return fragments

    def load_generated_documents(self, identity: BuildIdentity) -> list[BuildInfo]:
        """Read every build-info document written by an external extractor.

        Reserved files that were never written are skipped.

        Raises:
            CorruptFragmentError: If a non-empty document fails to deserialize
            UnreadableFragmentError: If a document cannot be read
        """
        generated_dir = self.generated_dir(identity)
        if not generated_dir.is_dir():
            return []

        documents = []
        for path in sorted(generated_dir.glob("*.json")):
            raw = self._read_bytes(path)
            if not raw.strip():
                continue
            try:
                documents.append(BuildInfo.model_validate_json(raw))
            except ValidationError as exc:
                raise CorruptFragmentError(path, str(exc)) from exc
        return documents

    def _read_partial(self, path: Path) -> Partial:
        raw = self._read_bytes(path)
        try:
            return Partial.model_validate_json(raw)
        except ValidationError as exc:
            raise CorruptFragmentError(path, str(exc)) from exc

    @staticmethod
    def _read_bytes(path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as exc:
            raise UnreadableFragmentError(path, str(exc)) from exc

    # -----------------------------------------------------------------------
    # Cleanup
    # -----------------------------------------------------------------------

    def purge(self, identity: BuildIdentity) -> None:
        """Remove a build's staging directory and everything in it.

        Succeeds silently if the directory does not exist.

        Raises:
            StagingIOError: If the directory exists but cannot be removed
        """
        build_dir = self.build_dir(identity)
        if not build_dir.exists():
            return
        try:
            shutil.rmtree(build_dir)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StagingIOError(f"Cannot remove staging area {build_dir}: {exc}") from exc
        logger.info("staging_area_purged", build=identity.label(), path=str(build_dir))
