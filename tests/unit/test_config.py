"""Unit tests for spec models, settings and loaders."""

import json

import pytest
from pydantic import ValidationError

from graphdialog.config.loader import ConfigLoader, FileScenarioSource, load_spec
from graphdialog.config.models import GraphSpec, NodeSpec
from graphdialog.config.settings import DialogConfig, EngineSettings
from graphdialog.core.errors import ConfigError


class TestSpecModels:
    def test_node_spec_accepts_camel_case_aliases(self):
        node = NodeSpec.model_validate(
            {"id": "ask", "additionalVarnames": ["alias"], "subScenario": "address"}
        )

        assert node.additional_varnames == ["alias"]
        assert node.sub_scenario == "address"

    def test_node_spec_keeps_unknown_fields(self):
        """Test custom payload fields survive validation."""
        node = NodeSpec.model_validate({"id": "map", "type": "map", "zoom": 4})

        assert node.model_extra == {"zoom": 4}

    def test_scenario_node_id_alias(self):
        node = NodeSpec.model_validate(
            {"id": "a", "scenarios": [{"condition": "x", "nodeId": "b"}]}
        )

        assert node.scenarios[0].node_id == "b"

    def test_graph_spec_requires_root_or_blocks(self):
        with pytest.raises(ValidationError, match="root"):
            GraphSpec.model_validate({"id": "empty"})

    def test_graph_spec_blocks_need_ids(self):
        with pytest.raises(ValidationError, match="id"):
            GraphSpec.model_validate({"id": "g", "blocks": [{"root": {"type": "text"}}]})

    def test_graph_spec_shared_data_alias(self):
        spec = GraphSpec.model_validate(
            {"id": "g", "blocks": [{"id": "b"}], "sharedData": {"version": "2"}}
        )

        assert spec.shared_data == {"version": "2"}


class TestSettings:
    def test_defaults(self):
        settings = EngineSettings()

        assert settings.invalid_message == "Invalid value"
        assert settings.end_message == "Bye bye!"
        assert settings.score_threshold == 0.0
        assert settings.max_steps_per_turn == 100
        assert settings.session_lock_ttl == 3600
        assert settings.log_level == "INFO"

    def test_rejects_out_of_range_threshold(self):
        with pytest.raises(ValidationError):
            EngineSettings(score_threshold=1.5)

    def test_rejects_unknown_log_level(self):
        with pytest.raises(ValidationError):
            EngineSettings(log_level="LOUD")

    def test_dialog_config_defaults(self):
        config = DialogConfig()

        assert config.graph is None
        assert isinstance(config.settings, EngineSettings)


class TestConfigLoader:
    def test_load_from_directory_resolves_paths(self, tmp_path):
        """Test relative paths resolve against the config file's directory."""
        # Arrange
        (tmp_path / "graphdialog.yaml").write_text(
            "graph: graph.json\n"
            "scenarios: flows\n"
            "settings:\n"
            "  end_message: See you\n"
        )

        # Act
        config = ConfigLoader.load(tmp_path)

        # Assert
        assert config.graph == str((tmp_path / "graph.json").resolve())
        assert config.scenarios == str((tmp_path / "flows").resolve())
        assert config.settings.end_message == "See you"

    def test_falls_back_to_config_yaml(self, tmp_path):
        (tmp_path / "config.yaml").write_text("handlers_module: my.handlers\n")

        config = ConfigLoader.load(tmp_path)

        assert config.handlers_module == "my.handlers"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load(tmp_path / "nope.yaml")

    def test_non_mapping_is_config_error(self, tmp_path):
        path = tmp_path / "graphdialog.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError):
            ConfigLoader.load(path)

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "graphdialog.yaml"
        path.write_text("")

        assert ConfigLoader.load(path).graph is None


class TestLoadSpec:
    def test_json(self, tmp_path):
        path = tmp_path / "graph.json"
        path.write_text(json.dumps({"id": "g", "root": {"type": "text"}}))

        assert load_spec(path)["id"] == "g"

    def test_yaml(self, tmp_path):
        path = tmp_path / "graph.yaml"
        path.write_text("id: g\nroot:\n  type: text\n")

        assert load_spec(path)["root"] == {"type": "text"}

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_spec(tmp_path / "missing.json")

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "graph.json"
        path.write_text("[1, 2]")

        with pytest.raises(ConfigError):
            load_spec(path)


class TestFileScenarioSource:
    @pytest.mark.asyncio
    async def test_loads_by_identifier(self, tmp_path):
        """Test identifiers map onto json or yaml files in the directory."""
        (tmp_path / "address.json").write_text(json.dumps({"type": "sequence"}))
        (tmp_path / "payment.yml").write_text("type: prompt\n")
        source = FileScenarioSource(tmp_path)

        assert await source.load_scenario("address") == {"type": "sequence"}
        assert await source.load_scenario("payment") == {"type": "prompt"}

    @pytest.mark.asyncio
    async def test_unknown_identifier(self, tmp_path):
        source = FileScenarioSource(tmp_path)

        with pytest.raises(FileNotFoundError, match="checkout"):
            await source.load_scenario("checkout")
