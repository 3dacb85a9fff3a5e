"""Tests for config.py — YAML loading and LLM config building."""

from __future__ import annotations

import pytest
from omegaconf import OmegaConf

from pbl_design_engine.cli import _to_engine_config
from pbl_design_engine.config import _resolve_env_vars, build_role_llm_config, load_config
from pbl_design_engine.models import EngineConfig


class TestResolveEnvVars:
    def test_string_replacement(self, monkeypatch):
        monkeypatch.setenv("TEST_VAR", "hello")
        assert _resolve_env_vars("${TEST_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch):
        monkeypatch.delenv("NONEXISTENT_VAR", raising=False)
        assert _resolve_env_vars("${NONEXISTENT_VAR}") == ""

    def test_nested(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", "secret")
        assert _resolve_env_vars({"azure": {"api_key": "${MY_KEY}"}, "n": [1, "${MY_KEY}"]}) == \
            {"azure": {"api_key": "secret"}, "n": [1, "secret"]}


class TestLoadConfig:
    def test_load_sample_config(self, sample_config_path, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "test-key")
        monkeypatch.setenv("AZURE_OPENAI_API_VERSION", "2024-01-01")
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://test.openai.azure.com/")
        config = load_config(sample_config_path)
        assert config.project_name == "Flood Resilience Unit"
        assert config.backend == "offline"
        assert config.history_window == 4
        assert config.help_nudge_threshold == 3
        assert config.models.coach == "gpt-4o-mini"
        assert config.azure.api_key == "test-key"
        assert not config.azure.endpoint.endswith("/")

    def test_defaults_survive(self, sample_config_path):
        config = load_config(sample_config_path)
        assert config.coaching_prompt_count == 3
        assert config.min_journey_phases == 2

    def test_missing_config_raises(self):
        with pytest.raises(FileNotFoundError):
            load_config("nonexistent.yaml")


class TestBuildRoleLlmConfig:
    def test_coach_role_on_azure(self):
        config = EngineConfig(
            models={"default": "gpt-4", "coach": "gpt-5"},
            azure={"api_key": "k", "api_version": "v", "endpoint": "https://test.openai.azure.com"},
        )
        entry = build_role_llm_config("coach", config)["config_list"][0]
        assert entry["model"] == "gpt-5"
        assert entry["api_type"] == "azure"
        assert entry["azure_deployment"] == "gpt-5"

    def test_unknown_role_uses_default(self):
        config = EngineConfig(models={"default": "gpt-4"})
        assert build_role_llm_config("summarizer", config)["config_list"][0]["model"] == "gpt-4"

    def test_non_azure_endpoint(self):
        config = EngineConfig(azure={"api_key": "k", "endpoint": "https://custom-api.example.com"})
        entry = build_role_llm_config("coach", config)["config_list"][0]
        assert "api_type" not in entry
        assert entry["base_url"] == "https://custom-api.example.com"

    def test_model_override(self):
        config = EngineConfig(
            models={
                "default": "claude-x",
                "overrides": {"claude-x": {"endpoint": "https://proxy.example.com/", "api_key": "o",
                                           "api_type": "anthropic"}},
            },
            azure={"api_key": "k", "endpoint": "https://test.openai.azure.com"},
        )
        llm_config = build_role_llm_config("coach", config)
        entry = llm_config["config_list"][0]
        assert entry["api_type"] == "anthropic"
        assert entry["base_url"] == "https://proxy.example.com"
        assert entry["api_key"] == "o"
        assert llm_config["timeout"] == 120
        assert llm_config["seed"] == 42


class TestToEngineConfig:
    def test_cli_only_fields_stripped(self, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "conv-key")
        cfg = OmegaConf.create({
            "mode": "chat",
            "verbose": True,
            "quiet": False,
            "project_id": "water-unit",
            "utterance": "",
            "step": "bigIdea",
            "subject": "Science",
            "age_group": "",
            "project_name": "Strip Test",
            "azure": {"api_key": "", "api_version": "", "endpoint": ""},
            "models": {"default": "gpt-4", "coach": None, "overrides": {}},
            "backend": "offline",
            "backend_timeout": 10.0,
            "history_window": 6,
            "help_nudge_threshold": 2,
            "coaching_prompt_count": 3,
            "min_journey_phases": 2,
            "store_dir": "projects/",
            "save_retries": 2,
        })
        config = _to_engine_config(cfg)
        assert config.project_name == "Strip Test"
        assert config.backend_timeout == 10.0
        assert config.azure.api_key == "conv-key"
        assert not hasattr(config, "mode")
        assert not hasattr(config, "project_id")
