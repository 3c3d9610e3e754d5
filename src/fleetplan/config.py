from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class AssignmentConfig:
    idle_status: str = "idle"


@dataclass(slots=True)
class SchedulerConfig:
    auto_assign: bool = True
    start_empty_phases: bool = True


@dataclass(slots=True)
class LoggingConfig:
    level: LogLevelName = "INFO"
    format: str = DEFAULT_LOG_FORMAT


@dataclass(slots=True)
class FleetplanConfig:
    assignment: AssignmentConfig = field(default_factory=AssignmentConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> FleetplanConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> FleetplanConfig:
        return cls(
            assignment=AssignmentConfig(**data.get("assignment", {})),
            scheduler=SchedulerConfig(**data.get("scheduler", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict:
        return {
            "assignment": {
                "idle_status": self.assignment.idle_status,
            },
            "scheduler": {
                "auto_assign": self.scheduler.auto_assign,
                "start_empty_phases": self.scheduler.start_empty_phases,
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: FleetplanConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ("assignment", "scheduler", "logging"):
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> FleetplanConfig:
    if not path.exists():
        return FleetplanConfig.default()
    return FleetplanConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: FleetplanConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")


def configure_logging(config: LoggingConfig) -> None:
    level = getattr(logging, config.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.format)
