"""
Skills Middleware - Progressive disclosure of specialized capabilities

- Skills are SKILL.md files with frontmatter metadata (name, description)
- Only names and descriptions go into the system prompt
- The load_skill tool returns a skill's full instructions on demand
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from langchain.agents.middleware.types import (
    AgentMiddleware,
    ModelRequest,
    ModelResponse,
    ToolCallRequest,
)
from langchain_core.messages import ToolMessage

from config.loader import split_frontmatter
from config.types import SkillMetadata
from core.events import SKILL_LOADED, EventCallback, emit

logger = logging.getLogger(__name__)


class SkillsMiddleware(AgentMiddleware):
    """Skills Middleware - the load_skill tool over an index of discovered skills"""

    TOOL_LOAD_SKILL = "load_skill"

    def __init__(
        self,
        skills: Iterable[SkillMetadata],
        enabled_skills: dict[str, bool] | None = None,
        on_event: EventCallback | None = None,
    ):
        """
        Initialize Skills middleware

        Args:
            skills: Discovered skills; later entries override earlier ones by name
            enabled_skills: Dict of skill_name: enabled (missing = enabled)
            on_event: Optional observer for skill-loaded events
        """
        self.enabled_skills = enabled_skills or {}
        self.on_event = on_event
        self._skills_index: dict[str, SkillMetadata] = {}
        for skill in skills:
            self._skills_index[skill.name] = skill
        logger.debug("SkillsMiddleware initialized with %d skills", len(self._skills_index))

    @property
    def skills(self) -> list[SkillMetadata]:
        """Enabled skills, in index order."""
        return [s for s in self._skills_index.values() if self.is_enabled(s.name)]

    def is_enabled(self, skill_name: str) -> bool:
        return self.enabled_skills.get(skill_name, True)

    def _load_skill_impl(self, skill_name: str) -> str:
        skill = self._skills_index.get(skill_name)
        if skill is None:
            available = ", ".join(s.name for s in self.skills)
            return f"Skill '{skill_name}' not found.\nAvailable skills: {available}"
        if not self.is_enabled(skill_name):
            return f"Skill '{skill_name}' is disabled in configuration."

        try:
            content = skill.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read skill %s at %s: %s", skill_name, skill.path, e)
            return f"Error loading skill '{skill_name}': {e}"

        parts = split_frontmatter(content)
        body = parts[1] if parts is not None else content.strip()
        emit(self.on_event, SKILL_LOADED, name=skill_name, source=skill.source)
        return f"Loaded skill: {skill_name}\n\n{body}"

    def _get_tool_schema(self) -> dict:
        available_skills = [s.name for s in self.skills]
        skills_list = "\n".join(f"- {s.name}: {s.description}" for s in self.skills)

        return {
            "type": "function",
            "function": {
                "name": self.TOOL_LOAD_SKILL,
                "description": (
                    "Load a specialized skill to access domain-specific knowledge and workflows.\n\n"
                    f"Available skills:\n{skills_list}\n\n"
                    "Returns the skill's instructions and context."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "skill_name": {
                            "type": "string",
                            "enum": available_skills,
                            "description": "Name of the skill to load",
                        }
                    },
                    "required": ["skill_name"],
                },
            },
        }

    def wrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], ModelResponse],
    ) -> ModelResponse:
        """Inject load_skill tool"""
        if not self.skills:
            return handler(request)

        tools = list(request.tools or [])
        tools.append(self._get_tool_schema())
        return handler(request.override(tools=tools))

    async def awrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], Awaitable[ModelResponse]],
    ) -> ModelResponse:
        """Async: Inject load_skill tool"""
        if not self.skills:
            return await handler(request)

        tools = list(request.tools or [])
        tools.append(self._get_tool_schema())
        return await handler(request.override(tools=tools))

    def _handle_tool_call(self, tool_call: dict) -> ToolMessage | None:
        if tool_call.get("name") != self.TOOL_LOAD_SKILL:
            return None
        skill_name = tool_call.get("args", {}).get("skill_name", "")
        return ToolMessage(
            content=self._load_skill_impl(skill_name),
            tool_call_id=tool_call.get("id", ""),
            name=self.TOOL_LOAD_SKILL,
        )

    def wrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], Any],
    ) -> Any:
        """Handle load_skill tool calls"""
        result = self._handle_tool_call(request.tool_call)
        return result if result is not None else handler(request)

    async def awrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], Awaitable[Any]],
    ) -> Any:
        """Async: Handle load_skill tool calls"""
        result = self._handle_tool_call(request.tool_call)
        return result if result is not None else await handler(request)
