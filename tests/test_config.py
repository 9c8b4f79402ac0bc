"""
Tests for atlas.config — YAML config file plus environment overrides.
"""

import os
import sys

# Ensure project root is importable.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from atlas.config import DEFAULT_MODEL, AtlasSettings, load_settings


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


class TestDefaults:

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml", environ={})
        assert settings == AtlasSettings()
        assert settings.graph.uri == "bolt://localhost:7687"
        assert settings.graph.database is None
        assert settings.model == DEFAULT_MODEL

    def test_config_path_from_environment(self, tmp_path):
        path = _write(tmp_path, "server:\n  port: 9000\n")
        settings = load_settings(environ={"CLOUD_ATLAS_CONFIG": str(path)})
        assert settings.port == 9000


class TestYamlFile:

    def test_full_file(self, tmp_path):
        path = _write(
            tmp_path,
            "neo4j:\n"
            "  uri: bolt://graph.internal:7687\n"
            "  username: reader\n"
            "  password: s3cret\n"
            "  database: cartography\n"
            "server:\n"
            "  host: 0.0.0.0\n"
            "  port: 8080\n"
            "log_level: info\n",
        )
        settings = load_settings(path, environ={})
        assert settings.graph.uri == "bolt://graph.internal:7687"
        assert settings.graph.username == "reader"
        assert settings.graph.password == "s3cret"
        assert settings.graph.database == "cartography"
        assert settings.host == "0.0.0.0"
        assert settings.port == 8080
        assert settings.log_level == "INFO"

    def test_malformed_yaml_ignored(self, tmp_path, caplog):
        path = _write(tmp_path, "neo4j: [unclosed\n")
        settings = load_settings(path, environ={})
        assert settings == AtlasSettings()
        assert "Ignoring" in caplog.text

    def test_non_mapping_ignored(self, tmp_path):
        path = _write(tmp_path, "- just\n- a list\n")
        assert load_settings(path, environ={}) == AtlasSettings()

    def test_empty_file(self, tmp_path):
        assert load_settings(_write(tmp_path, ""), environ={}) == AtlasSettings()

    def test_invalid_port_falls_back(self, tmp_path):
        path = _write(tmp_path, "server:\n  port: eighty\n")
        assert load_settings(path, environ={}).port == 8000


class TestEnvironmentOverrides:

    def test_env_beats_file(self, tmp_path):
        path = _write(tmp_path, "neo4j:\n  uri: bolt://from-file:7687\n  username: filer\n")
        settings = load_settings(
            path,
            environ={"NEO4J_URI": "bolt://from-env:7687", "CLOUD_ATLAS_PORT": "9100"},
        )
        assert settings.graph.uri == "bolt://from-env:7687"
        assert settings.graph.username == "filer"
        assert settings.port == 9100

    def test_env_without_file(self, tmp_path):
        settings = load_settings(
            tmp_path / "absent.yaml",
            environ={
                "NEO4J_PASSWORD": "pw",
                "NEO4J_DATABASE": "graph",
                "CLOUD_ATLAS_LOG_LEVEL": "debug",
                "CLOUD_ATLAS_MODEL": "claude-test",
            },
        )
        assert settings.graph.password == "pw"
        assert settings.graph.database == "graph"
        assert settings.log_level == "DEBUG"
        assert settings.model == "claude-test"

    def test_empty_env_value_ignored(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml", environ={"NEO4J_URI": ""})
        assert settings.graph.uri == "bolt://localhost:7687"

    def test_env_replaces_non_mapping_section(self, tmp_path):
        path = _write(tmp_path, "neo4j: nonsense\n")
        settings = load_settings(path, environ={"NEO4J_USERNAME": "env-user"})
        assert settings.graph.username == "env-user"
