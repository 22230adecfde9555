from __future__ import annotations

import importlib
import importlib.util
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

ENV_PREFIX = "PL"


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""


@dataclass
class LogToConfig:
    """Destinations for captured packet lines; both may be active."""

    file: bool = True
    console: bool = False

    def to_dict(self) -> Dict:
        return {
            "file": self.file,
            "console": self.console,
        }


@dataclass
class PacketLoggingConfig:
    logging_packets: bool = False
    log_to_json: bool = False
    flush_interval_s: float = 5.0
    ignored_packets: List[str] = field(default_factory=list)
    log_to: LogToConfig = field(default_factory=LogToConfig)

    def to_dict(self) -> Dict:
        return {
            "logging_packets": self.logging_packets,
            "log_to_json": self.log_to_json,
            "flush_interval_s": self.flush_interval_s,
            "ignored_packets": list(self.ignored_packets),
            "log_to": self.log_to.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "PacketLoggingConfig":
        data = dict(data or {})
        log_to = LogToConfig(**(data.pop("log_to", None) or {}))

        ignored = data.pop("ignored_packets", None) or []
        if not isinstance(ignored, (list, tuple)):
            raise ConfigError(
                f"packet_logging.ignored_packets must be a list of packet kinds, got {type(ignored).__name__}"
            )

        interval = data.pop("flush_interval_s", 5.0)
        if isinstance(interval, bool) or not isinstance(interval, (int, float)):
            raise ConfigError(
                f"packet_logging.flush_interval_s must be a number of seconds, got {interval!r}"
            )
        if interval <= 0:
            raise ConfigError(f"packet_logging.flush_interval_s must be positive, got {interval}")

        return cls(
            log_to=log_to,
            ignored_packets=[str(kind) for kind in ignored],
            flush_interval_s=float(interval),
            **data,
        )


@dataclass
class SystemConfig:
    log_level: str = "INFO"
    sessions_dir: str = "./sessions"

    def to_dict(self) -> Dict:
        return {
            "log_level": self.log_level,
            "sessions_dir": self.sessions_dir,
        }


@dataclass
class Config:
    system: SystemConfig = field(default_factory=SystemConfig)
    packet_logging: PacketLoggingConfig = field(default_factory=PacketLoggingConfig)

    def to_dict(self) -> Dict:
        return {
            "system": self.system.to_dict(),
            "packet_logging": self.packet_logging.to_dict(),
        }

    @classmethod
    def from_yaml(cls, paths: Iterable[Path]) -> "Config":
        """Load and layer YAML config files over the defaults.

        Files are applied left-to-right: sections merge key by key, scalar and
        list values (``ignored_packets``) are replaced. ``PL_*`` environment
        variables are applied last.
        """
        valid_paths = []
        for path in paths or []:
            path = Path(path)
            if path.is_file():
                valid_paths.append(path)
            else:
                logger.warning("Config path does not exist or is not a file: %s", path)

        merged = DEFAULT_CONFIG.to_dict()
        if not valid_paths:
            logger.info("No valid config files found, using default config")

        yaml = cls._import_yaml()
        for path in valid_paths:
            with path.open("r", encoding="utf-8") as f:
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain a mapping")
            _apply_layer(merged, data, source=str(path))

        apply_env_overrides(merged)
        return cls.from_dict(merged)

    @classmethod
    def from_dict(cls, data: Dict) -> "Config":
        system = data.get("system", {}) or {}
        packet_logging = data.get("packet_logging", {}) or {}

        try:
            return cls(
                system=SystemConfig(**system),
                packet_logging=PacketLoggingConfig.from_dict(packet_logging),
            )
        except TypeError as exc:
            raise ConfigError(f"Unknown configuration key: {exc}") from exc

    @staticmethod
    def _import_yaml():
        if importlib.util.find_spec("yaml") is None:
            raise ConfigError("PyYAML is required to load configuration from YAML.")
        return importlib.import_module("yaml")


DEFAULT_CONFIG = Config()


def _apply_layer(target: Dict[str, Any], layer: Mapping[str, Any], source: str, prefix: str = "") -> None:
    """Apply one YAML layer onto ``target`` in place."""
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, dict):
            if not isinstance(value, dict):
                raise ConfigError(f"{source}: {prefix}{key} must be a mapping")
            _apply_layer(current, value, source, f"{prefix}{key}.")
        else:
            target[key] = value


def _parse_flag(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("true", "yes", "1", "on"):
        return True
    if lowered in ("false", "no", "0", "off"):
        return False
    raise ValueError("expected true/false, yes/no, 1/0 or on/off")


def _parse_seconds(raw: str) -> float:
    return float(raw)


def _parse_kinds(raw: str) -> List[str]:
    """Packet kinds as a JSON list or a comma-separated string."""
    raw = raw.strip()
    if raw.startswith("["):
        kinds = json.loads(raw)
        if not isinstance(kinds, list):
            raise ValueError("expected a JSON list")
        return [str(kind) for kind in kinds]
    return [kind.strip() for kind in raw.split(",") if kind.strip()]


def _parse_text(raw: str) -> str:
    if not raw:
        raise ValueError("must not be empty")
    return raw


# Environment variable suffix -> (path into the config dict, parser)
ENV_FIELDS: Dict[str, Tuple[Tuple[str, ...], Callable[[str], Any]]] = {
    "SYSTEM_LOG_LEVEL": (("system", "log_level"), _parse_text),
    "SYSTEM_SESSIONS_DIR": (("system", "sessions_dir"), _parse_text),
    "PACKET_LOGGING_LOGGING_PACKETS": (("packet_logging", "logging_packets"), _parse_flag),
    "PACKET_LOGGING_LOG_TO_JSON": (("packet_logging", "log_to_json"), _parse_flag),
    "PACKET_LOGGING_FLUSH_INTERVAL_S": (("packet_logging", "flush_interval_s"), _parse_seconds),
    "PACKET_LOGGING_IGNORED_PACKETS": (("packet_logging", "ignored_packets"), _parse_kinds),
    "PACKET_LOGGING_LOG_TO_FILE": (("packet_logging", "log_to", "file"), _parse_flag),
    "PACKET_LOGGING_LOG_TO_CONSOLE": (("packet_logging", "log_to", "console"), _parse_flag),
}


def apply_env_overrides(
    config_dict: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
    prefix: str = ENV_PREFIX,
) -> Dict[str, Any]:
    """Override known settings in place from ``PL_*`` variables.

    ``PL_PACKET_LOGGING_LOG_TO_CONSOLE=on`` enables console output,
    ``PL_PACKET_LOGGING_IGNORED_PACKETS=Ping,Pong`` replaces the ignore list.

    Raises:
        ConfigError: If a variable's value cannot be parsed
    """
    environ = os.environ if environ is None else environ
    for suffix, (path, parse) in ENV_FIELDS.items():
        name = f"{prefix}_{suffix}"
        raw = environ.get(name)
        if raw is None:
            continue
        try:
            value = parse(raw)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {name}: {raw!r} ({exc})") from exc

        section = config_dict
        for key in path[:-1]:
            section = section.setdefault(key, {})
        section[path[-1]] = value
        logger.info("config_override_from_env var=%s path=%s", name, ".".join(path))
    return config_dict


def load_config(paths: Optional[Iterable[Path]] = None) -> Config:
    """Return config from the given YAML files, or the defaults plus env overrides."""
    path_list = [Path(path) for path in paths or []]
    if any(path.exists() for path in path_list):
        return Config.from_yaml(path_list)

    return Config.from_dict(apply_env_overrides(DEFAULT_CONFIG.to_dict()))


__all__ = [
    "Config",
    "ConfigError",
    "DEFAULT_CONFIG",
    "ENV_FIELDS",
    "LogToConfig",
    "PacketLoggingConfig",
    "SystemConfig",
    "apply_env_overrides",
    "load_config",
]
