"""Tests for the Build accumulator.

These tests drive the whole flow the way CI steps do: separate Build
instances for the same identity write fragments, and one of them
consolidates and cleans up.

Run with: pytest tests/test_build.py -v
"""

from __future__ import annotations

from pathlib import Path

import pytest

from buildinfo_accumulator.build import Build
from buildinfo_accumulator.errors import ConsolidationError, MalformedIdentityError
from buildinfo_accumulator.schemas import BuildInfo, Module, ModuleType
from buildinfo_accumulator.store import MARKER_FILE, FragmentStore

# ---------------------------------------------------------------------------
# Construction Tests
# ---------------------------------------------------------------------------


class TestBuildInit:
    """Tests for Build construction."""

    def test_creates_staging_area(self, temp_root: Path) -> None:
        build = Build("api", "1", temp_dir=temp_root)
        assert build.staging_dir.is_dir()
        assert (build.staging_dir / MARKER_FILE).exists()

    def test_malformed_identity(self, temp_root: Path) -> None:
        with pytest.raises(MalformedIdentityError):
            Build("", "1", temp_dir=temp_root)
        assert not temp_root.exists()

    def test_temp_dir_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("BUILDINFO_TEMP_DIR", str(tmp_path / "from-env"))
        build = Build("api", "1")
        assert build.store.root == tmp_path / "from-env"

    def test_explicit_store(self, store: FragmentStore) -> None:
        build = Build("api", "1", store=store)
        assert build.store is store


# ---------------------------------------------------------------------------
# Consolidation Tests
# ---------------------------------------------------------------------------


class TestToBuildInfo:
    """Tests for to_build_info."""

    def test_empty_build(self, temp_root: Path) -> None:
        document = Build("api", "1", temp_dir=temp_root).to_build_info()
        assert isinstance(document, BuildInfo)
        assert document.modules == []
        assert document.properties == {}
        assert document.name == "api"
        assert document.number == "1"
        assert document.started

    def test_fragments_from_separate_instances(self, temp_root: Path) -> None:
        """Each CI step constructs its own Build for the same identity."""
        Build("api", "1", "proj", temp_dir=temp_root).add_module(
            "generic", module_id="core"
        ).collect()
        Build("api", "1", "proj", temp_dir=temp_root).collect_env(
            environ={"FOO": "bar", "BAZ": "qux"}
        )

        document = Build("api", "1", "proj", temp_dir=temp_root).to_build_info()
        assert [m.id for m in document.modules] == ["core"]
        assert document.properties == {
            "buildInfo.env.BAZ": "qux",
            "buildInfo.env.FOO": "bar",
        }
        assert document.project == "proj"

    def test_other_build_unaffected(self, temp_root: Path) -> None:
        Build("api", "1", temp_dir=temp_root).add_module("generic", module_id="core").collect()
        assert Build("api", "2", temp_dir=temp_root).to_build_info().modules == []

    def test_similar_identities_do_not_share_fragments(self, temp_root: Path) -> None:
        Build("a_b", "c", temp_dir=temp_root).add_module("generic", module_id="core").collect()
        assert Build("a", "b_c", temp_dir=temp_root).to_build_info().modules == []

    def test_vcs_fragment(self, temp_root: Path) -> None:
        build = Build("api", "1", temp_dir=temp_root)
        build.collect_vcs("https://git.example.com/api.git", "abc123", branch="main")
        [vcs] = build.to_build_info().vcs
        assert vcs.revision == "abc123"
        assert vcs.branch == "main"

    def test_corrupt_fragment_fails_without_document(self, temp_root: Path) -> None:
        build = Build("api", "1", temp_dir=temp_root)
        build.add_module("generic", module_id="core").collect()
        bad = build.store.partials_dir(build.identity) / "1-corrupt.json"
        bad.write_bytes(b'{"kind": "module", "mod')

        with pytest.raises(ConsolidationError) as excinfo:
            build.to_build_info()
        assert excinfo.value.fragment_path == bad

    def test_generated_document_from_extractor(self, temp_root: Path, tmp_path: Path) -> None:
        build = Build("api", "1", temp_dir=temp_root)
        (tmp_path / "pom.xml").write_text(
            "<project><groupId>g</groupId><artifactId>a</artifactId>"
            "<version>1</version></project>"
        )
        maven = build.add_maven_module(tmp_path)
        Path(maven.output_path).write_text(
            BuildInfo(
                modules=[Module(id="g:a:1", type=ModuleType.MAVEN, properties={"from": "extractor"})]
            ).to_json()
        )
        maven.collect()

        [module] = build.to_build_info().modules
        assert module.id == "g:a:1"
        assert module.properties == {"from": "extractor"}


# ---------------------------------------------------------------------------
# In-memory Field Tests
# ---------------------------------------------------------------------------


class TestPresentationFields:
    """Agent, principal and URL live only on the consolidating instance."""

    def test_fields_applied_to_document(self, temp_root: Path) -> None:
        build = Build("api", "1", temp_dir=temp_root)
        build.set_agent_name("github-actions")
        build.set_agent_version("2.311.0")
        build.set_build_agent_version("0.4.1")
        build.set_principal("release-bot")
        build.set_build_url("https://ci.example.com/runs/1")

        document = build.to_build_info()
        assert document.agent.name == "github-actions"
        assert document.agent.version == "2.311.0"
        assert document.build_agent.version == "0.4.1"
        assert document.principal == "release-bot"
        assert document.url == "https://ci.example.com/runs/1"

    def test_fields_never_persisted(self, temp_root: Path) -> None:
        build = Build("api", "1", temp_dir=temp_root)
        build.set_agent_name("secret-agent-name")
        build.set_principal("release-bot-principal")
        build.set_build_url("https://ci.example.com/runs/unique-url")
        build.add_module("generic", module_id="core").collect()
        build.collect_env(environ={"FOO": "bar"})
        build.to_build_info()

        for path in build.staging_dir.rglob("*"):
            if path.is_file():
                content = path.read_text()
                assert "secret-agent-name" not in content
                assert "release-bot-principal" not in content
                assert "unique-url" not in content

        other = Build("api", "1", temp_dir=temp_root).to_build_info()
        assert other.agent.name == ""
        assert other.principal == ""
        assert other.url == ""
        assert [m.id for m in other.modules] == ["core"]


# ---------------------------------------------------------------------------
# Cleanup Tests
# ---------------------------------------------------------------------------


class TestClean:
    """Tests for clean."""

    def test_clean_then_load_is_empty(self, temp_root: Path) -> None:
        build = Build("api", "1", temp_dir=temp_root)
        build.add_module("generic", module_id="core").collect()
        build.clean()
        assert not build.staging_dir.exists()
        assert build.store.load_all_fragments(build.identity) == []

    def test_clean_twice(self, temp_root: Path) -> None:
        build = Build("api", "1", temp_dir=temp_root)
        build.clean()
        build.clean()

    def test_purge_before_any_fragment(self, store: FragmentStore, temp_root: Path) -> None:
        build = Build("api", "1", store=store)
        store.purge(build.identity)
        assert build.to_build_info().is_empty()

    def test_collect_after_clean_recreates_area(self, temp_root: Path) -> None:
        build = Build("api", "1", temp_dir=temp_root)
        build.clean()
        build.collect_env(environ={"FOO": "bar"})
        assert build.to_build_info().properties == {"buildInfo.env.FOO": "bar"}
