from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import IO, Any, Dict, Mapping, Optional

import yaml

CONFIG_ENV_VAR = "THRESHOLD_TUNER_CONFIG"
ENV_PREFIX = "THRESHOLD_TUNER_"
DEFAULT_CONFIG_PATH = Path.home() / ".threshold-tuner.yaml"

_TRUE_STRINGS = {"1", "true", "yes", "on"}


@dataclass
class TunerConfig:
    """
    Connection, authentication and concurrency settings.

    Precedence (lowest to highest): defaults, config file, THRESHOLD_TUNER_* environment
    variables, command-line flags.
    """

    # General Options
    verbose: bool = False
    concurrency: int = 10

    # Connection Options
    host: str = "localhost"
    port: int = 8089
    insecure: bool = False

    # Authentication Options
    access_token: str = ""
    user: str = "admin"
    password: str = ""

    # Transport retry policy
    max_retries: int = 3
    backoff_factor: float = 0.5
    backoff_max: float = 60.0
    backoff_jitter: float = 0.05

    @property
    def base_url(self) -> str:
        return f"https://{self.host}:{self.port}"

    @property
    def authentication(self) -> str:
        return "bearer token" if self.access_token else f"basic ({self.user})"

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if redact:
            for secret in ("access_token", "password"):
                if data[secret]:
                    data[secret] = "***"
        return data

    def updated(self, overrides: Mapping[str, Any]) -> "TunerConfig":
        """Returns a copy with every non-None override applied (coerced to the field type)."""
        data = asdict(self)
        for f in fields(self):
            value = overrides.get(f.name)
            if value is not None:
                data[f.name] = _coerce(f.type, value)
        return TunerConfig(**data)


def _coerce(type_name: Any, value: Any) -> Any:
    type_name = str(type_name)
    if type_name == "bool":
        return value.strip().lower() in _TRUE_STRINGS if isinstance(value, str) else bool(value)
    if type_name == "int":
        return int(value)
    if type_name == "float":
        return float(value)
    return str(value)


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, str]:
    overrides = {}
    for f in fields(TunerConfig):
        value = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
        if value is not None:
            overrides[f.name] = value
    return overrides


def resolve_config_path(path: Optional[str | Path] = None, environ: Optional[Mapping[str, str]] = None) -> Path:
    environ = os.environ if environ is None else environ
    if path:
        return Path(path)
    if environ.get(CONFIG_ENV_VAR):
        return Path(environ[CONFIG_ENV_VAR])
    return DEFAULT_CONFIG_PATH


def load_config(
    path_or_file: Optional[str | Path | IO[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> TunerConfig:
    """
    Loads settings from a YAML file (if it exists) and the environment.

    An explicitly passed file that does not exist is an error; the default location is optional.
    """
    environ = os.environ if environ is None else environ

    if hasattr(path_or_file, "read"):
        raw = path_or_file.read()  # type: ignore[union-attr]
    else:
        explicit = path_or_file is not None or bool(environ.get(CONFIG_ENV_VAR))
        config_path = resolve_config_path(path_or_file, environ)  # type: ignore[arg-type]
        if config_path.exists():
            raw = config_path.read_text(encoding="utf-8")
        elif explicit:
            raise FileNotFoundError(f"config file not found: {config_path}")
        else:
            raw = ""

    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError("config file must contain a YAML mapping")

    # yaml keys may use dashes like the command-line flags
    file_overrides = {str(k).replace("-", "_"): v for k, v in data.items()}
    return TunerConfig().updated(file_overrides).updated(_env_overrides(environ))
