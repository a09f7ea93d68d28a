"""Loaders for dialog configuration and graph spec files."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from graphdialog.config.settings import DialogConfig
from graphdialog.core.errors import ConfigError

logger = logging.getLogger(__name__)

SPEC_SUFFIXES = (".json", ".yaml", ".yml")


class ConfigLoader:
    """Load DialogConfig from YAML files."""

    @staticmethod
    def load(path: Path | str) -> DialogConfig:
        """Load configuration from YAML file.

        Args:
            path: Path to config directory or graphdialog.yaml file

        Returns:
            Parsed DialogConfig instance. Relative ``graph`` and ``scenarios``
            paths are resolved against the config file's directory.
        """
        config_path = Path(path)

        if config_path.is_dir():
            yaml_file = config_path / "graphdialog.yaml"
            if not yaml_file.exists():
                yaml_file = config_path / "config.yaml"
        else:
            yaml_file = config_path

        if not yaml_file.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_file}")

        with open(yaml_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {yaml_file}")

        base = yaml_file.parent
        for key in ("graph", "scenarios"):
            if data.get(key):
                data[key] = str((base / data[key]).resolve())

        # Pydantic's model_validate returns Self, but mypy infers Any
        return DialogConfig.model_validate(data)  # type: ignore[no-any-return]


def load_spec(path: Path | str) -> dict[str, Any]:
    """Read a graph spec from a JSON or YAML file."""
    spec_path = Path(path)
    if not spec_path.exists():
        raise FileNotFoundError(f"Graph spec not found: {spec_path}")

    with open(spec_path, encoding="utf-8") as f:
        if spec_path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ConfigError(f"Graph spec must contain a mapping: {spec_path}")
    return data


class FileScenarioSource:
    """Scenario source reading ``<identifier>.json|.yaml|.yml`` from a directory."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _find(self, identifier: str) -> Path:
        for suffix in SPEC_SUFFIXES:
            candidate = self.directory / f"{identifier}{suffix}"
            if candidate.exists():
                return candidate
        raise FileNotFoundError(f"Scenario '{identifier}' not found in {self.directory}")

    async def load_scenario(self, identifier: str) -> dict[str, Any]:
        path = self._find(identifier)
        logger.debug(f"Loading scenario '{identifier}' from {path}")
        return await asyncio.to_thread(load_spec, path)
