# FILE: httpkernel/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict


_log = logging.getLogger(__name__)

ENV_PREFIX = "HTTPKERNEL_"


# ---------------------------------------------------------------------------
# Env helpers
# ---------------------------------------------------------------------------


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    v = raw.strip().lower()
    return v in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _load_yaml_mapping(path: str) -> Dict[str, Any]:
    """
    Load a simple top-level mapping from YAML.

    Constraints:
      - Ignore if path is empty or missing.
      - Only accept dict at top-level.
      - Coerce non-scalar values via str() to avoid arbitrary structures.
    """
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        _log.warning("failed to load YAML config from %s", path, exc_info=True)
        return {}
    if not isinstance(doc, dict):
        return {}
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        if isinstance(v, (str, int, float, bool)) or v is None:
            out[str(k)] = v
        else:
            out[str(k)] = str(v)
    return out


# ---------------------------------------------------------------------------
# Immutable runtime snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KernelConfig:
    """
    Process-wide, read-only facts injected into pipeline components.

    Components receive this at construction; nothing reads the environment
    while a request is in flight.
    """

    project_dir: str
    environment: str = "dev"
    debug: bool = True
    app_name: Optional[str] = None
    base_path: str = ""

    def context(self) -> Dict[str, Any]:
        """Request context attached to every adapted request."""
        return {
            "APP_ENV": self.environment,
            "APP_DEBUG": self.debug,
            "APP_NAME": self.app_name,
            "APP_BASE_PATH": self.base_path,
        }


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    # --- Core / identity --------------------------------------------------

    app_name: Optional[str] = None
    environment: str = "dev"
    debug: bool = True
    project_dir: str = os.getcwd()
    base_path: str = ""

    # Indicates how this config reached the process (defaults/yaml).
    config_origin: str = "defaults"

    # --- Static files -----------------------------------------------------

    static_dir: Optional[str] = None
    static_cache_max_age: int = 86400

    # --- Throttling (token bucket per client) -----------------------------

    throttle_enabled: bool = False
    throttle_capacity: float = 60.0
    throttle_refill_per_s: float = 1.0

    # --- Observability ----------------------------------------------------

    log_level: str = "INFO"
    log_json: bool = True
    metrics_enabled: bool = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    def kernel_config(self) -> KernelConfig:
        return KernelConfig(
            project_dir=self.project_dir,
            environment=self.environment,
            debug=self.debug,
            app_name=self.app_name,
            base_path=self.base_path,
        )

    def context(self) -> Dict[str, Any]:
        return self.kernel_config().context()


# ---------------------------------------------------------------------------
# Loading / merging
# ---------------------------------------------------------------------------


def load_settings(overrides: Optional[Mapping[str, Any]] = None) -> Settings:
    """
    Load Settings from defaults, optional YAML, environment, then overrides.

    Priority (later wins):
      1. Settings defaults (in-code).
      2. YAML file pointed to by HTTPKERNEL_CONFIG_PATH.
      3. Environment variables (HTTPKERNEL_*), with bounds.
      4. Explicit `overrides` (tests, embedding applications).
    """
    merged: Dict[str, Any] = Settings().model_dump()
    origin = "defaults"

    # 1) YAML overlay
    yaml_doc = _load_yaml_mapping(os.environ.get(ENV_PREFIX + "CONFIG_PATH", "").strip())
    if yaml_doc:
        merged.update(yaml_doc)
        # Validate early so a bad file fails here, not mid-request.
        merged = Settings(**merged).model_dump()
        origin = "yaml"

    # 2) Environment overrides
    merged["app_name"] = _env_str(ENV_PREFIX + "APP_NAME", merged["app_name"])
    merged["environment"] = _env_str(ENV_PREFIX + "ENV", merged["environment"])
    merged["debug"] = _env_bool(ENV_PREFIX + "DEBUG", merged["debug"])
    merged["project_dir"] = _env_str(ENV_PREFIX + "PROJECT_DIR", merged["project_dir"])
    merged["base_path"] = _env_str(ENV_PREFIX + "BASE_PATH", merged["base_path"]) or ""

    merged["static_dir"] = _env_str(ENV_PREFIX + "STATIC_DIR", merged["static_dir"])
    max_age = _env_int(ENV_PREFIX + "STATIC_MAX_AGE", merged["static_cache_max_age"])
    if max_age >= 0:
        merged["static_cache_max_age"] = max_age

    merged["throttle_enabled"] = _env_bool(ENV_PREFIX + "THROTTLE", merged["throttle_enabled"])
    cap = _env_float(ENV_PREFIX + "THROTTLE_CAPACITY", merged["throttle_capacity"])
    if cap > 0.0:
        merged["throttle_capacity"] = cap
    refill = _env_float(ENV_PREFIX + "THROTTLE_REFILL", merged["throttle_refill_per_s"])
    if refill >= 0.0:
        merged["throttle_refill_per_s"] = refill

    merged["log_level"] = (_env_str(ENV_PREFIX + "LOG_LEVEL", merged["log_level"]) or "INFO").upper()
    merged["log_json"] = _env_bool(ENV_PREFIX + "LOG_JSON", merged["log_json"])
    merged["metrics_enabled"] = _env_bool(ENV_PREFIX + "METRICS", merged["metrics_enabled"])

    # 3) Explicit overrides
    if overrides:
        merged.update(overrides)
        origin = "overrides" if origin == "defaults" else origin

    merged["config_origin"] = origin
    return Settings(**merged)
