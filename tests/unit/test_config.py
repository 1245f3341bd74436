"""Unit tests for settings and the command-line interface."""

import pytest

from toolcall_server.__main__ import build_parser, settings_from_args
from toolcall_server.config import DEFAULT_FIELD_MAPPINGS_PATH, ToolcallServerSettings


class TestSettings:
    """Tests for ToolcallServerSettings."""

    def test_defaults(self):
        settings = ToolcallServerSettings()

        assert settings.ollama_host == "http://localhost:11434"
        assert settings.secondary_temperature == 0.0
        assert settings.concurrent_tool_execution is False
        assert settings.intent_gate.enabled is True
        assert settings.completeness.min_length == 400

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TOOLCALL_OLLAMA_HOST", "http://gpu-box:11434")
        monkeypatch.setenv("TOOLCALL_INTENT_GATE__ENABLED", "false")
        monkeypatch.setenv("TOOLCALL_TOOL_TIMEOUTS", '{"perform_ttest": 90}')

        settings = ToolcallServerSettings()

        assert settings.ollama_host == "http://gpu-box:11434"
        assert settings.intent_gate.enabled is False
        assert settings.timeout_for("perform_ttest") == 90.0
        assert settings.timeout_for("lookup_record") == 30.0

    def test_resolved_paths(self, tmp_path):
        settings = ToolcallServerSettings(data_dir=str(tmp_path), registry_file="registry.json")

        assert settings.resolved_registry_file == tmp_path / "registry.json"
        assert settings.resolved_field_mappings_file == DEFAULT_FIELD_MAPPINGS_PATH

        settings = ToolcallServerSettings(data_dir=str(tmp_path), field_mappings_file="mappings.json")
        assert settings.resolved_field_mappings_file == tmp_path / "mappings.json"

    def test_packaged_field_mappings_exist(self):
        assert DEFAULT_FIELD_MAPPINGS_PATH.is_file()


class TestCli:
    """Tests for argument parsing."""

    def test_arguments_override_settings(self, monkeypatch):
        monkeypatch.setenv("TOOLCALL_PORT", "9000")
        args = build_parser().parse_args(
            ["--host", "0.0.0.0", "--ollama-host", "http://gpu-box:11434", "--log-level", "DEBUG"]
        )

        settings = settings_from_args(args)

        assert settings.host == "0.0.0.0"
        assert settings.port == 9000
        assert settings.ollama_host == "http://gpu-box:11434"
        assert settings.log_level == "DEBUG"
        assert args.reload is False

    def test_registry_file_and_port(self):
        args = build_parser().parse_args(["--port", "8100", "--registry-file", "conf/tools.json", "--reload"])

        settings = settings_from_args(args)

        assert settings.port == 8100
        assert settings.registry_file == "conf/tools.json"
        assert args.reload is True

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "LOUD"])
