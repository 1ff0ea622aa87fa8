"""
Tests for operator configuration loading — file, env overrides, errors.
"""

from pathlib import Path

import pytest

from cops.core.config.loader import (
    ConfigError,
    OperatorConfig,
    find_config_file,
    load_config,
)


class TestDefaults:
    def test_defaults(self):
        config = OperatorConfig()
        assert config.namespaces == []
        assert config.resync_interval == 30.0
        assert config.enable_disruption_budget is False
        assert config.owner_references is True
        assert config.kubectl_context is None
        assert config.max_attempts == 5


class TestLoadConfig:
    def test_reads_file(self, tmp_path: Path):
        path = tmp_path / "cops.yml"
        path.write_text(
            "namespaces: [ci, builds]\n"
            "resync_interval: 10\n"
            "enable_disruption_budget: true\n"
        )
        config = load_config(path, environ={})
        assert config.namespaces == ["ci", "builds"]
        assert config.resync_interval == 10.0
        assert config.enable_disruption_budget is True

    def test_empty_file_is_defaults(self, tmp_path: Path):
        path = tmp_path / "cops.yml"
        path.write_text("")
        assert load_config(path, environ={}) == OperatorConfig()

    def test_missing_auto_detected_file_is_fine(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_config(environ={}) == OperatorConfig()

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml", environ={})

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "cops.yml"
        path.write_text("namespaces: [ci\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path, environ={})

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "cops.yml"
        path.write_text("- ci\n- builds\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(path, environ={})

    def test_unknown_key_rejected(self, tmp_path: Path):
        path = tmp_path / "cops.yml"
        path.write_text("resync: 10\n")
        with pytest.raises(ConfigError, match="Invalid operator configuration"):
            load_config(path, environ={})

    def test_out_of_range(self, tmp_path: Path):
        path = tmp_path / "cops.yml"
        path.write_text("resync_interval: 0\n")
        with pytest.raises(ConfigError):
            load_config(path, environ={})


class TestEnvOverrides:
    def test_env_wins_over_file(self, tmp_path: Path):
        path = tmp_path / "cops.yml"
        path.write_text("resync_interval: 10\nnamespaces: [ci]\n")
        config = load_config(path, environ={
            "COPS_RESYNC_INTERVAL": "90",
            "COPS_NAMESPACES": "prod, staging,",
            "COPS_OWNER_REFERENCES": "false",
        })
        assert config.resync_interval == 90.0
        assert config.namespaces == ["prod", "staging"]
        assert config.owner_references is False

    def test_bad_env_value(self, tmp_path: Path):
        path = tmp_path / "cops.yml"
        path.write_text("")
        with pytest.raises(ConfigError):
            load_config(path, environ={"COPS_MAX_ATTEMPTS": "lots"})


class TestFindConfigFile:
    def test_walks_up(self, tmp_path: Path):
        (tmp_path / "cops.yml").write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == (tmp_path / "cops.yml").resolve()

    def test_nearest_wins(self, tmp_path: Path):
        (tmp_path / "cops.yml").write_text("")
        inner = tmp_path / "inner"
        inner.mkdir()
        (inner / "cops.yml").write_text("")
        assert find_config_file(inner) == (inner / "cops.yml").resolve()
