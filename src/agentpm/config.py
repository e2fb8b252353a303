"""Project configuration: which epic file is current.

Convention-based like the rest of the tool: ``.agentpm.json`` is found by
walking up from the working directory. Epic paths are stored as given and
resolved relative to the directory holding the config file.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agentpm import hints
from agentpm.errors import ConfigError
from agentpm.storage import write_atomic
from agentpm.types.core import AgentPMConfigDict

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".agentpm.json"
DEFAULT_ASSIGNEE = "agent"


@dataclass
class Config:
    current_epic: str = ""
    previous_epic: str = ""
    project_name: str = ""
    default_assignee: str = DEFAULT_ASSIGNEE
    prerequisite_tests_block: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        return cls(
            current_epic=str(data.get("current_epic") or ""),
            previous_epic=str(data.get("previous_epic") or ""),
            project_name=str(data.get("project_name") or ""),
            default_assignee=str(data.get("default_assignee") or DEFAULT_ASSIGNEE),
            prerequisite_tests_block=bool(data.get("prerequisite_tests_block", False)),
        )

    def to_dict(self) -> AgentPMConfigDict:
        data: AgentPMConfigDict = {
            "current_epic": self.current_epic,
            "project_name": self.project_name,
            "default_assignee": self.default_assignee,
        }
        if self.previous_epic:
            data["previous_epic"] = self.previous_epic
        if self.prerequisite_tests_block:
            data["prerequisite_tests_block"] = True
        return data


def find_config(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .agentpm.json.

    Returns the config file path.
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    msg = f"No {CONFIG_FILENAME} found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(config_path: Path) -> Config:
    """Read .agentpm.json. Returns defaults if missing or corrupt."""
    if not config_path.exists():
        return Config()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return Config()
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return Config()
    return Config.from_dict(data)


def write_config(config_path: Path, config: Config) -> None:
    """Write .agentpm.json atomically."""
    write_atomic(config_path, json.dumps(config.to_dict(), indent=2) + "\n")


def resolve_epic_path(config_path: Path, epic: str) -> Path:
    path = Path(epic).expanduser()
    if path.is_absolute():
        return path
    return config_path.parent / path


def require_current_epic(config: Config) -> str:
    if not config.current_epic:
        raise ConfigError("No current epic configured", hint=hints.init_project())
    return config.current_epic


def switch_to(config: Config, epic: str) -> Config:
    """Make *epic* current, remembering the old one for ``--back``."""
    if epic == config.current_epic:
        return config
    config.previous_epic = config.current_epic
    config.current_epic = epic
    return config


def switch_back(config: Config) -> Config:
    if not config.previous_epic:
        raise ConfigError("No previous epic to switch back to", hint="Use 'agentpm switch-epic <path>' first")
    config.current_epic, config.previous_epic = config.previous_epic, config.current_epic
    return config
