"""
Tests for the YAML config loader, env overrides, analysis-constant overrides
and logging setup.
"""
import logging

import pytest

from billintel import config_loader
from billintel.config_loader import build_constants, get_config, load_config, max_workers
from billintel.errors import ConfigError
from billintel.logging_setup import setup_logging
from billintel.rules.constants import DEFAULT_CONSTANTS

_ENV_VARS = ("BILLINTEL_CONFIG_PATH", "BILLINTEL_LOG_LEVEL", "BILLINTEL_MAX_WORKERS",
             "BILLINTEL_LLM_ENABLED", "BILLINTEL_LLM_MODEL", "HF_TOKEN")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_loader, "_CONFIG_CACHE", None)


def _write(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestLoadConfig:

    def test_missing_file_is_empty(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yml")) == {}

    def test_yaml_values(self, tmp_path):
        cfg = load_config(_write(tmp_path, "logging:\n  level: DEBUG\nbatch:\n  max_workers: 2\n"))
        assert cfg["logging"]["level"] == "DEBUG"
        assert max_workers(cfg) == 2

    def test_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BILLINTEL_CONFIG_PATH", _write(tmp_path, "llm:\n  model: some/model\n"))
        assert load_config()["llm"]["model"] == "some/model"

    def test_env_overrides_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BILLINTEL_LOG_LEVEL", "WARNING")
        monkeypatch.setenv("BILLINTEL_MAX_WORKERS", "8")
        cfg = load_config(_write(tmp_path, "logging:\n  level: DEBUG\n  format: '%(message)s'\n"))
        assert cfg["logging"] == {"level": "WARNING", "format": "%(message)s"}
        assert cfg["batch"]["max_workers"] == 8

    def test_token_enables_llm(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HF_TOKEN", "hf_test")
        assert load_config(_write(tmp_path, "llm:\n  enabled: false\n"))["llm"]["enabled"] is True

    def test_explicit_llm_switch(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HF_TOKEN", "hf_test")
        monkeypatch.setenv("BILLINTEL_LLM_ENABLED", "off")
        assert load_config(str(tmp_path / "absent.yml"))["llm"]["enabled"] is False

    def test_bad_worker_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BILLINTEL_MAX_WORKERS", "many")
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "absent.yml"))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "logging: [unclosed\n"))

    def test_non_mapping_yaml(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "- just\n- a list\n"))

    def test_get_config_caches(self, tmp_path):
        path = _write(tmp_path, "batch:\n  max_workers: 3\n")
        first = get_config(path)
        assert get_config(str(tmp_path / "other.yml")) is first
        assert get_config(str(tmp_path / "other.yml"), force_reload=True) == {}


class TestMaxWorkers:

    def test_default(self):
        assert max_workers({}) == 4

    @pytest.mark.parametrize("value", [0, -1, "4", 2.5, True])
    def test_invalid(self, value):
        with pytest.raises(ConfigError):
            max_workers({"batch": {"max_workers": value}})


class TestBuildConstants:

    def test_empty_section_gives_defaults(self):
        assert build_constants({}) == DEFAULT_CONSTANTS

    def test_overrides(self):
        constants = build_constants({"analysis": {
            "usage_thresholds": {"mild": 10},
            "seasonal_factors": {"summer": 1.6},
            "benchmarks": {"national": {"cost_per_kwh": 0.15}},
            "default_trend": 0.05,
        }})
        assert constants.usage_thresholds.mild == 10
        assert constants.usage_thresholds.severe == 40
        assert constants.seasonal_factors.summer == 1.6
        assert constants.seasonal_factors.winter == 1.3
        assert constants.benchmarks.national.cost_per_kwh == 0.15
        assert constants.benchmarks.national.usage_kwh == 877
        assert constants.default_trend == 0.05
        assert constants.cost_thresholds == DEFAULT_CONSTANTS.cost_thresholds

    @pytest.mark.parametrize("analysis", [
        {"usage_thresholds": {"mild": 30}},
        {"usage_thresholds": {"extreme": 90}},
        {"cost_thresholds": "high"},
        {"seasonal_factors": {"winter": "cold"}},
        {"benchmarks": {"global": {"usage_kwh": 900}}},
        {"benchmarks": {"national": {"cost_per_kwh": 0}}},
        {"seasonal_factors": {"summer": 0}},
        {"charge_tolerance": -1},
        {"peak_severe_ratio": 35},
        {"unknown_key": 1},
    ])
    def test_invalid(self, analysis):
        with pytest.raises(ConfigError):
            build_constants({"analysis": analysis})


class TestLoggingSetup:

    def test_level_from_config(self):
        setup_logging({"logging": {"level": "debug"}})
        assert logging.getLogger().level == logging.DEBUG
        setup_logging({})
        assert logging.getLogger().level == logging.INFO

    def test_module_loggers_stay_enabled(self):
        setup_logging({})
        assert not logging.getLogger("billintel.pipeline").disabled
