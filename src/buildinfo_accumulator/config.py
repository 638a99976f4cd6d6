"""Configuration for the build-info accumulator.

Settings come from three places, most specific first:
- Explicit arguments (e.g., ``Build(temp_dir=...)`` or ``--temp-dir``)
- An optional YAML file (``--config accumulator.yaml``)
- Environment variables and built-in defaults

YAML format:

    temp_dir: /var/ci/buildinfo
    env_include: ["CI_*", "GIT_*"]
    env_exclude: ["*password*", "*token*"]
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

TEMP_DIR_ENV_VAR = "BUILDINFO_TEMP_DIR"

# Opt-in filters for variables that commonly hold credentials.
SECRET_ENV_PATTERNS = [
    "*password*",
    "*psw*",
    "*secret*",
    "*key*",
    "*token*",
    "*auth*",
]


def default_temp_dir() -> Path:
    """Root directory under which every build's staging area lives."""
    configured = os.environ.get(TEMP_DIR_ENV_VAR)
    if configured:
        return Path(configured)
    return Path(tempfile.gettempdir()) / "buildinfo"


class AccumulatorConfig(BaseModel):
    """Settings shared by every command.

    Attributes:
        temp_dir: Root of the staging areas. All processes contributing to
                  one build must agree on it.
        env_include: Glob patterns of variable names to capture (all if empty)
        env_exclude: Glob patterns of variable names never captured (none by
                     default; SECRET_ENV_PATTERNS is a ready-made list)
    """

    temp_dir: Path = Field(default_factory=default_temp_dir)
    env_include: list[str] = Field(default_factory=list)
    env_exclude: list[str] = Field(default_factory=list)


def load_config(path: str | Path | None = None) -> AccumulatorConfig:
    """Load and validate a YAML config file.

    Args:
        path: Path to the YAML file. None means defaults only.

    Returns:
        A validated AccumulatorConfig. Returns defaults if the file doesn't exist.

    Raises:
        ValueError: If the YAML content is invalid or fails validation.
    """
    if path is None:
        return AccumulatorConfig()

    config_path = Path(path)
    if not config_path.exists():
        return AccumulatorConfig()

    try:
        raw = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    try:
        return AccumulatorConfig.model_validate(raw)
    except Exception as exc:
        raise ValueError(f"Invalid accumulator config in {path}: {exc}") from exc
