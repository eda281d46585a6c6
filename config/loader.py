"""Runtime configuration and subagent definition loader.

Combines:
- Three-tier runtime config merge (system > user > project) plus CLI overrides
- Subagent .md parsing (YAML frontmatter + system prompt)
- Skill discovery (SKILL.md frontmatter in user and project skill directories)

Configuration priority (highest to lowest):
1. CLI overrides
2. Project config (.deepstate/runtime.json in workspace)
3. User config (~/.deepstate/runtime.json)
4. System defaults (config/defaults/runtime.json)
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import ValidationError as PydanticValidationError

from config.schema import DeepStateSettings
from config.types import AgentConfig, SkillMetadata

logger = logging.getLogger(__name__)

CONFIG_DIRNAME = ".deepstate"

SkillSource = Literal["user", "project"]


def split_frontmatter(content: str) -> tuple[str, str] | None:
    """Split ``---``-delimited frontmatter from a Markdown body; None if absent."""
    if not content.startswith("---"):
        return None
    parts = content.split("---", 2)
    if len(parts) < 3:
        return None
    return parts[1], parts[2].strip()


class AgentLoader:
    """Loader for runtime config and subagent definitions."""

    def __init__(self, workspace_root: str | Path | None = None, home: str | Path | None = None):
        self.workspace_root = Path(workspace_root).resolve() if workspace_root else None
        self.home = Path(home) if home else Path.home()
        self._system_defaults_dir = Path(__file__).parent / "defaults"
        self._agents: dict[str, AgentConfig] = {}

    # ── Three-tier runtime config ──

    def load(self, cli_overrides: dict[str, Any] | None = None) -> DeepStateSettings:
        """Load runtime configuration with three-tier merge."""
        final_config = self._deep_merge(
            self._load_system_defaults(),
            self._load_user_config(),
            self._load_project_config(),
        )

        if cli_overrides:
            final_config = self._deep_merge(final_config, cli_overrides)

        if self.workspace_root and "workspace_root" not in final_config:
            final_config["workspace_root"] = str(self.workspace_root)

        final_config = self._expand_env_vars(final_config)
        final_config = self._remove_none_values(final_config)

        return DeepStateSettings(**final_config)

    # ── Agent .md parsing ──

    def load_all_agents(self) -> dict[str, AgentConfig]:
        """Load all agents by priority (low -> high, later overrides earlier)."""
        self._agents = {}

        # 1. Built-in agents (lowest priority)
        self._load_agents_from_dir(self._system_defaults_dir / "agents")

        # 2. User-level agents
        self._load_agents_from_dir(self.home / CONFIG_DIRNAME / "agents")

        # 3. Project-level agents
        if self.workspace_root:
            self._load_agents_from_dir(self.workspace_root / CONFIG_DIRNAME / "agents")

        return self._agents

    def _load_agents_from_dir(self, dir_path: Path) -> None:
        """Load all .md files from a directory."""
        if not dir_path.exists():
            return
        for md_file in sorted(dir_path.glob("*.md")):
            config = self.parse_agent_file(md_file)
            if config:
                self._agents[config.name] = config

    @staticmethod
    def _read_frontmatter(path: Path, kind: str) -> tuple[dict[str, Any], str] | None:
        """Split a Markdown file into (YAML frontmatter, body); None if it has none."""
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping %s file %s: %s", kind, path, e)
            return None

        parts = split_frontmatter(content)
        if parts is None:
            return None

        try:
            fm = yaml.safe_load(parts[0])
        except yaml.YAMLError as e:
            logger.warning("Skipping %s file %s: bad frontmatter: %s", kind, path, e)
            return None

        if not isinstance(fm, dict):
            return None
        return fm, parts[1]

    @classmethod
    def parse_agent_file(cls, path: Path) -> AgentConfig | None:
        """Parse Markdown file with YAML frontmatter into AgentConfig."""
        parsed = cls._read_frontmatter(path, "agent")
        if parsed is None:
            return None
        fm, body = parsed
        if "name" not in fm:
            return None

        tools = fm.get("tools", ["*"])
        if isinstance(tools, str):
            tools = [t.strip() for t in tools.split(",") if t.strip()]

        try:
            return AgentConfig(
                name=fm["name"],
                description=fm.get("description", ""),
                tools=tools,
                system_prompt=body,
                model=fm.get("model"),
                max_steps=fm.get("max_steps"),
                source_dir=path.resolve().parent,
            )
        except PydanticValidationError as e:
            logger.warning("Skipping agent file %s: %s", path, e)
            return None

    def get_agent(self, name: str) -> AgentConfig | None:
        """Get a specific agent by name."""
        return self._agents.get(name)

    def list_agents(self) -> list[str]:
        """List all available agent names."""
        return list(self._agents.keys())

    # ── Skill discovery ──

    def load_all_skills(self) -> dict[str, SkillMetadata]:
        """Index SKILL.md files by name; project skills override user skills."""
        skills: dict[str, SkillMetadata] = {}
        self._load_skills_from_dir(self.home / CONFIG_DIRNAME / "skills", "user", skills)
        if self.workspace_root:
            self._load_skills_from_dir(self.workspace_root / CONFIG_DIRNAME / "skills", "project", skills)
        return skills

    def _load_skills_from_dir(self, dir_path: Path, source: SkillSource, skills: dict[str, SkillMetadata]) -> None:
        """Load ``<dir>/<skill>/SKILL.md`` entries, skipping hidden and symlinked directories."""
        if not dir_path.is_dir():
            return
        try:
            entries = sorted(dir_path.iterdir())
        except OSError as e:
            logger.warning("Cannot list skills in %s: %s", dir_path, e)
            return

        for entry in entries:
            if entry.name.startswith("."):
                continue
            if entry.is_symlink():
                logger.warning("Skipping symlinked skill directory %s", entry)
                continue
            skill_file = entry / "SKILL.md"
            if not entry.is_dir() or not skill_file.is_file():
                continue
            skill = self.parse_skill_file(skill_file, source)
            if skill:
                skills[skill.name] = skill

    @classmethod
    def parse_skill_file(cls, path: Path, source: SkillSource) -> SkillMetadata | None:
        """Parse SKILL.md frontmatter; ``name`` and ``description`` are required."""
        parsed = cls._read_frontmatter(path, "skill")
        if parsed is None:
            logger.warning("Skipping skill file %s: no frontmatter", path)
            return None
        fm, _body = parsed
        if not fm.get("name") or not fm.get("description"):
            logger.warning("Skipping skill file %s: name and description are required", path)
            return None

        try:
            return SkillMetadata(
                name=str(fm["name"]),
                description=str(fm["description"]).strip(),
                path=path.resolve(),
                source=source,
            )
        except PydanticValidationError as e:
            logger.warning("Skipping skill file %s: %s", path, e)
            return None

    # ── Internal helpers ──

    def _load_system_defaults(self) -> dict[str, Any]:
        """Load system defaults from runtime.json."""
        return self._load_json(self._system_defaults_dir / "runtime.json")

    def _load_user_config(self) -> dict[str, Any]:
        """Load user config from ~/.deepstate/runtime.json."""
        return self._load_json(self.home / CONFIG_DIRNAME / "runtime.json")

    def _load_project_config(self) -> dict[str, Any]:
        """Load project config from .deepstate/runtime.json."""
        if not self.workspace_root:
            return {}
        return self._load_json(self.workspace_root / CONFIG_DIRNAME / "runtime.json")

    @staticmethod
    def _load_json(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config %s: %s", path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _deep_merge(self, *dicts: dict[str, Any]) -> dict[str, Any]:
        """Deep merge multiple dictionaries. Later dicts override earlier ones."""
        result: dict[str, Any] = {}
        for d in dicts:
            for key, value in d.items():
                if key not in result:
                    result[key] = value
                elif value is None:
                    continue
                elif isinstance(value, dict) and isinstance(result[key], dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = value
        return result

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively expand ${VAR} and ~ in string values."""
        if isinstance(obj, dict):
            return {k: self._expand_env_vars(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [self._expand_env_vars(v) for v in obj]
        if isinstance(obj, str):
            return os.path.expandvars(os.path.expanduser(obj))
        return obj

    def _remove_none_values(self, obj: Any) -> Any:
        """Recursively remove None values to allow Pydantic defaults."""
        if isinstance(obj, dict):
            return {k: self._remove_none_values(v) for k, v in obj.items() if v is not None}
        if isinstance(obj, list):
            return [self._remove_none_values(v) for v in obj if v is not None]
        return obj


def load_config(
    workspace_root: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> DeepStateSettings:
    """Convenience function to load runtime configuration."""
    return AgentLoader(workspace_root=workspace_root).load(cli_overrides=cli_overrides)
