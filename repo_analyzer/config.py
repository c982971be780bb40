"""Configuration loading for repo-analyzer (.repo-analyzer.yml)."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import ConfigError

CONFIG_FILENAME = ".repo-analyzer.yml"

DEFAULT_REGION = "us-east-1"
DEFAULT_API_URL = "https://api.repo-analyzer.com/upload"
DEFAULT_KEY_PREFIX = "reports/"

_ACCESS_KEY_RE = re.compile(r"^[A-Z0-9]{16,128}$")

ENV_REGION_KEYS = ("AWS_REGION", "AWS_DEFAULT_REGION")
ENV_BUCKET_KEYS = ("REPO_ANALYZER_BUCKET",)
ENV_ACCESS_KEY_KEYS = ("AWS_ACCESS_KEY_ID",)
ENV_SECRET_KEY_KEYS = ("AWS_SECRET_ACCESS_KEY",)
ENV_API_URL_KEYS = ("REPO_ANALYZER_API_URL",)
ENV_API_KEY_KEYS = ("REPO_ANALYZER_API_KEY",)


@dataclass(frozen=True)
class UploadConfig:
    """Resolved delivery settings handed to the uploader at construction."""

    bucket: Optional[str] = None
    region: str = DEFAULT_REGION
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    api_key: Optional[str] = None
    key_prefix: str = DEFAULT_KEY_PREFIX
    direct_timeout: float = 30.0
    fallback_timeout: float = 60.0
    ca_bundle_path: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_key or self.secret_key)

    def credentials_well_formed(self) -> bool:
        """Return True when direct object-store delivery can be attempted."""
        if not self.access_key or not self.secret_key or not self.bucket:
            return False
        if not _ACCESS_KEY_RE.match(self.access_key):
            return False
        return len(self.secret_key.strip()) >= 16

    def __repr__(self) -> str:
        secret = "***" if self.secret_key else None
        return (
            f"UploadConfig(bucket={self.bucket!r}, region={self.region!r}, "
            f"access_key={self.access_key!r}, secret_key={secret!r}, "
            f"api_url={self.api_url!r})"
        )


@dataclass(frozen=True)
class AnalyzerConfig:
    """Scan and history defaults."""

    exclude_paths: List[str] = field(default_factory=list)
    top_contributors: int = 5
    history_depth: int = 0


@dataclass(frozen=True)
class CloneConfig:
    """Settings for cloning remote repositories."""

    timeout: float = 300.0


@dataclass(frozen=True)
class RepoAnalyzerConfig:
    """Represents the settings defined in .repo-analyzer.yml."""

    path: Optional[Path] = None
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    clone: CloneConfig = field(default_factory=CloneConfig)


def load_config(config_path: Path | None = None) -> RepoAnalyzerConfig:
    """Load configuration from disk; missing files yield defaults."""
    if config_path is None:
        config_path = Path.cwd()
    config_file = _resolve_config_path(config_path)

    if not config_file.exists():
        return RepoAnalyzerConfig()

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    analyzer_data = _as_dict(data.get("analyzer"))
    analyzer = AnalyzerConfig(
        exclude_paths=_as_str_list(analyzer_data.get("exclude_paths")),
        top_contributors=_non_negative(
            _as_int(analyzer_data.get("top_contributors")), 5, "analyzer.top_contributors"
        ),
        history_depth=_non_negative(
            _as_int(analyzer_data.get("history_depth")), 0, "analyzer.history_depth"
        ),
    )

    upload_data = _as_dict(data.get("upload"))
    upload = UploadConfig(
        bucket=_as_str(upload_data.get("bucket")),
        region=_as_str(upload_data.get("region")) or DEFAULT_REGION,
        access_key=_as_str(upload_data.get("access_key")),
        secret_key=_as_str(upload_data.get("secret_key")),
        api_url=_as_str(upload_data.get("api_url")) or DEFAULT_API_URL,
        api_key=_as_str(upload_data.get("api_key")),
        key_prefix=_as_str(upload_data.get("key_prefix")) or DEFAULT_KEY_PREFIX,
        direct_timeout=_as_float(upload_data.get("direct_timeout")) or 30.0,
        fallback_timeout=_as_float(upload_data.get("fallback_timeout")) or 60.0,
        ca_bundle_path=_as_str(upload_data.get("ca_bundle_path")),
    )

    clone_data = _as_dict(data.get("clone"))
    clone = CloneConfig(timeout=_as_float(clone_data.get("timeout")) or 300.0)

    return RepoAnalyzerConfig(path=config_file, analyzer=analyzer, upload=upload, clone=clone)


def apply_env_overrides(
    config: RepoAnalyzerConfig, environ: Mapping[str, str] | None = None
) -> RepoAnalyzerConfig:
    """Return a copy of ``config`` with environment values taking precedence."""
    env = os.environ if environ is None else environ
    upload = config.upload
    overrides: Dict[str, Any] = {}

    region = _first_env_value(env, ENV_REGION_KEYS)
    if region:
        overrides["region"] = region
    bucket = _first_env_value(env, ENV_BUCKET_KEYS)
    if bucket:
        overrides["bucket"] = bucket
    access_key = _first_env_value(env, ENV_ACCESS_KEY_KEYS)
    if access_key:
        overrides["access_key"] = access_key
    secret_key = _first_env_value(env, ENV_SECRET_KEY_KEYS)
    if secret_key:
        overrides["secret_key"] = secret_key
    api_url = _first_env_value(env, ENV_API_URL_KEYS)
    if api_url:
        overrides["api_url"] = api_url
    api_key = _first_env_value(env, ENV_API_KEY_KEYS)
    if api_key:
        overrides["api_key"] = api_key

    if not overrides:
        return config
    return replace(config, upload=replace(upload, **overrides))


def _first_env_value(environ: Mapping[str, str], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = environ.get(key)
        if value and value.strip():
            return value.strip()
    return None


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _non_negative(value: Optional[int], default: int, name: str) -> int:
    if value is None:
        return default
    if value < 0:
        raise ConfigError(f"{name} must be zero or a positive integer")
    return value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return text or None
    return None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "AnalyzerConfig",
    "CONFIG_FILENAME",
    "CloneConfig",
    "ConfigError",
    "RepoAnalyzerConfig",
    "UploadConfig",
    "apply_env_overrides",
    "load_config",
]
