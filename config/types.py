"""Type definitions for subagent and skill configuration."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Subagent configuration, parsed from a .md file or given in code."""

    name: str
    description: str = ""
    system_prompt: str = ""
    tools: list[str] = Field(default_factory=lambda: ["*"])
    model: str | None = None
    max_steps: int | None = Field(None, gt=0)
    source_dir: Path | None = None

    def allows_tool(self, tool_name: str) -> bool:
        return "*" in self.tools or tool_name in self.tools


class SkillMetadata(BaseModel):
    """Frontmatter of one ``<skills dir>/<skill>/SKILL.md`` file."""

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    path: Path
    source: Literal["user", "project"]
