#!/usr/bin/env python3
# CUI // SP-CTI
"""Tests for kms_module.config — generator configuration loading."""

from unittest.mock import patch

import pytest

from kms_module import config as config_mod
from kms_module.config import DEFAULT_CONFIG, _expand_env, load_config
from kms_module.errors import ConfigurationError


class TestExpandEnv:
    def test_default_used(self, monkeypatch):
        monkeypatch.delenv("_TEST_KMS_VAR", raising=False)
        assert _expand_env("${_TEST_KMS_VAR:-fallback}") == "fallback"

    def test_env_wins(self, monkeypatch):
        monkeypatch.setenv("_TEST_KMS_VAR", "from_env")
        assert _expand_env("${_TEST_KMS_VAR:-fallback}") == "from_env"

    def test_unset_without_default_kept(self, monkeypatch):
        monkeypatch.delenv("_TEST_KMS_VAR", raising=False)
        assert _expand_env("${_TEST_KMS_VAR}") == "${_TEST_KMS_VAR}"

    def test_non_string(self):
        assert _expand_env(True) is True


class TestLoadConfig:
    def test_repo_default_file(self, monkeypatch):
        monkeypatch.delenv("KMS_MODULE_PROVIDER_VERSION", raising=False)
        monkeypatch.delenv("KMS_MODULE_LOOKUP", raising=False)
        config = load_config()
        assert config["terraform"]["provider_version"] == ">= 5.0"
        assert config["lookup"]["backend"] == "none"
        assert config["output"]["directory"] == "terraform-kms"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("KMS_MODULE_PROVIDER_VERSION", "~> 6.1")
        assert load_config()["terraform"]["provider_version"] == "~> 6.1"

    def test_missing_default_file_uses_builtin(self, tmp_path):
        with patch.object(config_mod, "DEFAULT_CONFIG_PATH", tmp_path / "none.yaml"):
            config = load_config()
        assert config == DEFAULT_CONFIG

    def test_partial_file_merged(self, fixtures_dir):
        config = load_config(fixtures_dir / "kms_config.yaml")
        assert config["terraform"]["provider_version"] == "~> 6.0"
        assert config["terraform"]["required_version"] == ">= 1.5.0"
        assert config["output"]["header"] is False
        assert config["output"]["module_dir"] == "modules/kms"
        assert config["logging"]["level"] == "DEBUG"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "missing.yaml")

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_bad_header_flag(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("output:\n  header: maybe\n", encoding="utf-8")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)
        assert exc_info.value.config_key == "output.header"

    def test_defaults_not_mutated(self, fixtures_dir):
        load_config(fixtures_dir / "kms_config.yaml")
        assert DEFAULT_CONFIG["output"]["header"] is True
