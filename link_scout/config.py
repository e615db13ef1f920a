# === FILE: link_scout/config.py ===
"""
Загрузка и валидация конфигурации LinkScout.

Pydantic describes the schema of the scanner settings and of the per-scan
options; YAML/JSON files and a handful of environment variables feed it.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

DEFAULT_USER_AGENT = "LinkScoutBot/0.1 (+https://linkscout.dev)"
DEFAULT_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
)

# env var -> config field
_ENV_OVERRIDES: dict[str, str] = {
    "SCAN_USER_AGENT": "user_agent",
    "BROWSER_USER_AGENT": "browser_user_agent",
    "BROWSER_HEADLESS": "headless",
    "DEBUG_LOGS": "debug",
}


class ScannerConfig(BaseModel):
    """Process-wide crawler settings shared by every scan."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_agent: str = Field(DEFAULT_USER_AGENT, min_length=1, description="Crawler identity (User-Agent, robots.txt).")
    browser_user_agent: str = Field(DEFAULT_BROWSER_USER_AGENT, min_length=1, description="Identity of the rendered fetcher.")
    request_timeout: float = Field(15.0, gt=0, description="Timeout of one lightweight request (seconds).")
    max_redirects: int = Field(5, ge=0, description="Max redirect hops per request.")
    rate_limit_interval: float = Field(0.5, ge=0, description="Min interval between requests to one host (seconds).")
    max_retries: int = Field(2, ge=0, description="Extra attempts for transient failures.")
    backoff_base_delay: float = Field(0.5, ge=0, description="Backoff base delay (seconds).")
    max_links: int = Field(100, ge=1, description="Finding budget of a scan.")
    privileged_max_links: int = Field(200, ge=1, description="Finding budget for IP-allowlisted scans.")
    browser_timeout: float = Field(10.0, gt=0, description="Navigation timeout and bound of the network idle wait (seconds).")
    browser_idle_time: float = Field(0.5, ge=0, description="Extra settle time when the network does not go idle within browser_timeout (seconds).")
    headless: bool = Field(True, description="Run the browser headless.")
    robots_ttl: Optional[float] = Field(None, gt=0, description="robots.txt cache lifetime (seconds), None = forever.")
    debug: bool = Field(False, description="Log every request with full details.")

    @field_validator("user_agent", "browser_user_agent", mode="before")
    def _strip(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def _check_budgets(self) -> ScannerConfig:
        if self.privileged_max_links < self.max_links:
            raise ValueError("privileged_max_links must be >= max_links")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> ScannerConfig:
        """Build a config from defaults, *environ* and explicit *overrides*."""
        data = _env_values(os.environ if environ is None else environ)
        data.update(overrides)
        return cls(**data)


class SiteCredentials(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    user: str
    password: str = Field(..., alias="pass")


class CooperationOptions(BaseModel):
    """Opaque bundle supplied by a site owner who cooperates with the scan."""
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    whitelist_ip: bool = Field(False, alias="whitelistIP")
    site_credentials: Optional[SiteCredentials] = Field(None, alias="siteCredentials")
    api_key: Optional[str] = Field(None, alias="apiKey")

    @field_validator("api_key", mode="before")
    def _strip_api_key(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or None
        return v


class ScanOptions(BaseModel):
    """Options of one scan invocation."""
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    cooperation: Optional[CooperationOptions] = None
    allow_browser_fallback: bool = Field(True, alias="allowBrowserFallback")

    def budget(self, config: ScannerConfig) -> int:
        if self.cooperation is not None and self.cooperation.whitelist_ip:
            return config.privileged_max_links
        return config.max_links


def _env_values(environ: Mapping[str, str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for var, field_name in _ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is None or raw == "":
            continue
        if field_name == "headless":
            data[field_name] = raw.strip().lower() != "false"
        elif field_name == "debug":
            data[field_name] = raw.strip().lower() == "true"
        else:
            data[field_name] = raw
    return data


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(
    path: Union[str, Path, None],
    environ: Optional[Mapping[str, str]] = None,
) -> ScannerConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект ScannerConfig.

    Environment overrides (``SCAN_USER_AGENT``, ``BROWSER_USER_AGENT``,
    ``BROWSER_HEADLESS``, ``DEBUG_LOGS``) win over the file.
    При отсутствии файла конфига бросает FileNotFoundError.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(_DEFAULT_CFG))
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    data.update(_env_values(os.environ if environ is None else environ))
    return ScannerConfig(**data)


__all__ = [
    "ScannerConfig",
    "SiteCredentials",
    "CooperationOptions",
    "ScanOptions",
    "ValidationError",
    "load_config",
]
