"""Global configuration — XDG config file, env vars, defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from kkp.models import DEFAULT_TIMEOUT_MS


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "kkp"
    return Path.home() / ".config" / "kkp"


@dataclass
class KkpConfig:
    """User defaults for the kill path; command-line flags win over these."""

    config_dir: Path = field(default_factory=_default_config_dir)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    tree: bool = False
    protected_names: tuple[str, ...] = ()

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.yaml"

    @classmethod
    def load(cls) -> KkpConfig:
        """Load config from the YAML file (if any), then environment variables."""
        config = cls()

        env_file = os.environ.get("KKP_CONFIG")
        path = Path(env_file) if env_file else config.config_file
        if path.is_file():
            config.apply(load_config_file(path))

        env_timeout = os.environ.get("KKP_TIMEOUT_MS")
        if env_timeout:
            config.timeout_ms = _non_negative_int(env_timeout, "KKP_TIMEOUT_MS")

        return config

    def apply(self, data: dict) -> None:
        """Overlay values from a parsed config mapping."""
        if "timeout_ms" in data:
            self.timeout_ms = _non_negative_int(data["timeout_ms"], "timeout_ms")
        if "tree" in data:
            self.tree = bool(data["tree"])
        names = data.get("protected_names") or []
        if isinstance(names, str):
            names = [names]
        self.protected_names = tuple(str(n).lower() for n in names)


def load_config_file(path: str | Path) -> dict:
    """Parse a YAML config file into a mapping."""
    text = Path(path).read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    return data


def _non_negative_int(value: object, name: str) -> int:
    try:
        n = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if n < 0:
        raise ValueError(f"{name} must be >= 0, got {n}")
    return n
