"""Tests for the command line interface.

Each test runs several invocations against one temp root, the way separate
CI steps would.

Run with: pytest tests/test_cli.py -v
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from buildinfo_accumulator.cli import main
from buildinfo_accumulator.schemas import BuildIdentity
from buildinfo_accumulator.store import FragmentStore


def run(temp_root: Path, *args: str) -> int:
    return main(["--temp-dir", str(temp_root), *args])


class TestCli:
    """End-to-end CLI tests."""

    def test_add_module_collect_env_and_show(
        self,
        temp_root: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        (tmp_path / "go.mod").write_text("module example.com/svc\n")
        monkeypatch.setenv("BUILDINFO_CLI_STAGE", "deploy")

        assert run(temp_root, "add-module", "go", "svc", "7", "--src-path", str(tmp_path)) == 0
        assert (
            run(
                temp_root,
                "add-module", "generic", "svc", "7",
                "--module-id", "docs",
                "--property", "owner=team-docs",
            )
            == 0
        )
        assert run(temp_root, "collect-env", "svc", "7", "--include", "BUILDINFO_CLI_*") == 0
        capsys.readouterr()

        assert run(temp_root, "show", "svc", "7", "--agent-name", "jenkins", "--url", "https://ci/7") == 0
        document = json.loads(capsys.readouterr().out)

        assert [m["id"] for m in document["modules"]] == ["docs", "example.com/svc"]
        assert document["modules"][0]["properties"] == {"owner": "team-docs"}
        assert document["properties"] == {"buildInfo.env.BUILDINFO_CLI_STAGE": "deploy"}
        assert document["agent"]["name"] == "jenkins"
        assert document["url"] == "https://ci/7"

    def test_clean(self, temp_root: Path) -> None:
        assert run(temp_root, "add-module", "generic", "svc", "7", "--module-id", "core") == 0
        assert run(temp_root, "clean", "svc", "7") == 0
        identity = BuildIdentity.create("svc", "7")
        assert FragmentStore(temp_root).load_all_fragments(identity) == []

    def test_corrupt_fragment_exit_code(self, temp_root: Path) -> None:
        assert run(temp_root, "add-module", "generic", "svc", "7", "--module-id", "core") == 0
        store = FragmentStore(temp_root)
        identity = BuildIdentity.create("svc", "7")
        (store.partials_dir(identity) / "1-bad.json").write_text("{")
        assert run(temp_root, "show", "svc", "7") == 1

    def test_extraction_failure_exit_code(self, temp_root: Path, tmp_path: Path) -> None:
        assert run(temp_root, "add-module", "maven", "svc", "7", "--src-path", str(tmp_path)) == 1

    def test_bad_property_is_usage_error(self, temp_root: Path) -> None:
        with pytest.raises(SystemExit) as excinfo:
            run(temp_root, "add-module", "generic", "svc", "7", "--module-id", "m", "--property", "novalue")
        assert excinfo.value.code == 2

    def test_config_file_temp_dir(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        stage = tmp_path / "configured"
        config_file = tmp_path / "accumulator.yaml"
        config_file.write_text(f"temp_dir: {stage}\n")

        assert main(["--config", str(config_file), "add-module", "generic", "svc", "1", "--module-id", "core"]) == 0
        capsys.readouterr()
        assert main(["--config", str(config_file), "show", "svc", "1"]) == 0
        assert json.loads(capsys.readouterr().out)["modules"][0]["id"] == "core"
        assert stage.is_dir()

    def test_collect_env_secret_filter_is_opt_in(
        self,
        temp_root: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("BUILDINFO_CLI_MONKEY", "banana")
        monkeypatch.setenv("BUILDINFO_CLI_TOKEN", "s3cr3t")

        assert run(temp_root, "collect-env", "svc", "7", "--include", "BUILDINFO_CLI_*") == 0
        assert run(temp_root, "collect-env", "svc", "8", "--include", "BUILDINFO_CLI_*", "--exclude-secrets") == 0
        capsys.readouterr()

        assert run(temp_root, "show", "svc", "7") == 0
        assert json.loads(capsys.readouterr().out)["properties"] == {
            "buildInfo.env.BUILDINFO_CLI_MONKEY": "banana",
            "buildInfo.env.BUILDINFO_CLI_TOKEN": "s3cr3t",
        }
        assert run(temp_root, "show", "svc", "8") == 0
        assert json.loads(capsys.readouterr().out)["properties"] == {
            "buildInfo.env.BUILDINFO_CLI_MONKEY": "banana",
        }
