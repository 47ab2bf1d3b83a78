"""
YAML-backed configuration loader with environment-variable overrides.

- Safe defaults: a missing config file yields {} and the built-in constants
- Environment variables (and a .env file) override deployment-specific values
- The `analysis:` section tunes the constant tables handed to every analyzer
"""

from __future__ import annotations

import dataclasses
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .rules.constants import (
    DEFAULT_CONSTANTS,
    AnalysisConstants,
    Benchmark,
    BenchmarkTable,
    SeasonalFactors,
    SeverityThresholds,
    SeveritySavings,
)

DEFAULT_MAX_WORKERS = 4


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base (override wins)."""
    out: Dict[str, Any] = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _parse_bool(value: Optional[str], default: Optional[bool] = None) -> Optional[bool]:
    if value is None:
        return default
    v = value.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def _env_override_dict() -> Dict[str, Any]:
    """
    Map env vars to config keys.
    Keep this small and explicit.
    """
    overrides: Dict[str, Any] = {}

    log_level = os.getenv("BILLINTEL_LOG_LEVEL")
    if log_level:
        overrides = _deep_merge(overrides, {"logging": {"level": log_level}})

    max_workers = os.getenv("BILLINTEL_MAX_WORKERS")
    if max_workers:
        try:
            workers = int(max_workers)
        except ValueError as exc:
            raise ConfigError(f"BILLINTEL_MAX_WORKERS must be an integer, got {max_workers!r}") from exc
        overrides = _deep_merge(overrides, {"batch": {"max_workers": workers}})

    # A token means the structured parse can run even if YAML says false
    if os.getenv("HF_TOKEN"):
        overrides = _deep_merge(overrides, {"llm": {"enabled": True}})
    llm_enabled = _parse_bool(os.getenv("BILLINTEL_LLM_ENABLED"))
    if llm_enabled is not None:
        overrides = _deep_merge(overrides, {"llm": {"enabled": llm_enabled}})

    llm_model = os.getenv("BILLINTEL_LLM_MODEL")
    if llm_model:
        overrides = _deep_merge(overrides, {"llm": {"model": llm_model}})

    return overrides


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load config.yml and apply environment overrides.
    """
    load_dotenv()
    config_path = path or os.getenv("BILLINTEL_CONFIG_PATH", "config.yml")
    if not os.path.exists(config_path):
        cfg: Dict[str, Any] = {}
    else:
        with open(config_path, "r", encoding="utf-8") as f:
            try:
                cfg = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"{config_path}: {exc}") from exc
        if not isinstance(cfg, dict):
            raise ConfigError(f"{config_path}: top level must be a mapping")

    return _deep_merge(cfg, _env_override_dict())


_CONFIG_CACHE: Optional[Dict[str, Any]] = None


def get_config(path: Optional[str] = None, *, force_reload: bool = False) -> Dict[str, Any]:
    global _CONFIG_CACHE
    if _CONFIG_CACHE is None or force_reload:
        _CONFIG_CACHE = load_config(path)
    return _CONFIG_CACHE


def max_workers(cfg: Dict[str, Any]) -> int:
    value = (cfg.get("batch") or {}).get("max_workers", DEFAULT_MAX_WORKERS)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"batch.max_workers must be a positive integer, got {value!r}")
    return value


# -- analysis constants -------------------------------------------------------

def _number(value: Any, key: str, positive: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    if positive and value <= 0:
        raise ConfigError(f"{key} must be positive, got {value!r}")
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value!r}")
    return float(value)


def _replace(base: Any, values: Any, key: str, positive: bool = False) -> Any:
    """Copy a frozen constants dataclass with numeric fields overridden from config."""
    if not isinstance(values, dict):
        raise ConfigError(f"{key} must be a mapping")
    known = {f.name for f in dataclasses.fields(base)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"{key}: unknown keys {', '.join(sorted(unknown))}")
    return dataclasses.replace(base, **{k: _number(v, f"{key}.{k}", positive) for k, v in values.items()})


def _thresholds(base: SeverityThresholds, values: Any, key: str) -> SeverityThresholds:
    thresholds = _replace(base, values, key)
    if not thresholds.mild < thresholds.moderate < thresholds.severe:
        raise ConfigError(f"{key} must satisfy mild < moderate < severe")
    return thresholds


def _benchmarks(base: BenchmarkTable, values: Any) -> BenchmarkTable:
    if not isinstance(values, dict):
        raise ConfigError("analysis.benchmarks must be a mapping")
    tiers = base.tiers()
    unknown = set(values) - set(tiers)
    if unknown:
        raise ConfigError(f"analysis.benchmarks: unknown tiers {', '.join(sorted(unknown))}")
    updated: Dict[str, Benchmark] = {
        tier: _replace(tiers[tier], tier_values, f"analysis.benchmarks.{tier}", positive=True)
        for tier, tier_values in values.items()
    }
    return dataclasses.replace(base, **updated)


_SCALARS = ("peak_anomaly_ratio", "peak_severe_ratio", "charge_tolerance", "usage_tolerance_kwh", "default_trend")


def build_constants(cfg: Optional[Dict[str, Any]] = None) -> AnalysisConstants:
    """AnalysisConstants with the `analysis:` config section applied over the defaults."""
    analysis = (cfg or {}).get("analysis") or {}
    if not isinstance(analysis, dict):
        raise ConfigError("analysis must be a mapping")

    known = set(_SCALARS) | {"usage_thresholds", "cost_thresholds", "seasonal_factors",
                             "benchmarks", "severity_savings"}
    unknown = set(analysis) - known
    if unknown:
        raise ConfigError(f"analysis: unknown keys {', '.join(sorted(unknown))}")

    changes: Dict[str, Any] = {k: _number(analysis[k], f"analysis.{k}") for k in _SCALARS if k in analysis}
    if "usage_thresholds" in analysis:
        changes["usage_thresholds"] = _thresholds(
            DEFAULT_CONSTANTS.usage_thresholds, analysis["usage_thresholds"], "analysis.usage_thresholds")
    if "cost_thresholds" in analysis:
        changes["cost_thresholds"] = _thresholds(
            DEFAULT_CONSTANTS.cost_thresholds, analysis["cost_thresholds"], "analysis.cost_thresholds")
    if "seasonal_factors" in analysis:
        changes["seasonal_factors"] = _replace(
            SeasonalFactors(), analysis["seasonal_factors"], "analysis.seasonal_factors", positive=True)
    if "severity_savings" in analysis:
        changes["severity_savings"] = _replace(
            SeveritySavings(), analysis["severity_savings"], "analysis.severity_savings")
    if "benchmarks" in analysis:
        changes["benchmarks"] = _benchmarks(BenchmarkTable(), analysis["benchmarks"])

    constants = dataclasses.replace(DEFAULT_CONSTANTS, **changes)
    if constants.peak_severe_ratio < constants.peak_anomaly_ratio:
        raise ConfigError("analysis.peak_severe_ratio must not be below peak_anomaly_ratio")
    return constants
