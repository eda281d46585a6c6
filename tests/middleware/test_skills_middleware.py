from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import ToolMessage

from config.types import SkillMetadata
from core.prompts import build_skills_prompt, build_system_prompt
from core.skills import SkillsMiddleware


def _call(skill_name, call_id="call_1"):
    return {"name": "load_skill", "args": {"skill_name": skill_name}, "id": call_id, "type": "tool_call"}


@pytest.fixture
def skills(tmp_path):
    research = tmp_path / "research" / "SKILL.md"
    research.parent.mkdir()
    research.write_text("---\nname: research\ndescription: Dig into sources\n---\n\n# Research\n1. Search\n", encoding="utf-8")
    drafts = tmp_path / "drafts" / "SKILL.md"
    drafts.parent.mkdir()
    drafts.write_text("---\nname: drafts\ndescription: Write drafts\n---\nDraft it.", encoding="utf-8")
    return [
        SkillMetadata(name="research", description="Dig into sources", path=research, source="user"),
        SkillMetadata(name="drafts", description="Write drafts", path=drafts, source="project"),
    ]


def test_load_skill_returns_body_without_frontmatter(skills, on_event, events):
    middleware = SkillsMiddleware(skills, on_event=on_event)

    result = middleware._handle_tool_call(_call("research"))

    assert isinstance(result, ToolMessage)
    assert result.name == "load_skill"
    assert result.content == "Loaded skill: research\n\n# Research\n1. Search"
    assert events == [{"type": "skill-loaded", "name": "research", "source": "user"}]


def test_unknown_and_disabled_skills(skills):
    middleware = SkillsMiddleware(skills, enabled_skills={"drafts": False})

    unknown = middleware._handle_tool_call(_call("poetry"))
    disabled = middleware._handle_tool_call(_call("drafts", "call_2"))

    assert unknown.content == "Skill 'poetry' not found.\nAvailable skills: research"
    assert "disabled" in disabled.content
    assert [s.name for s in middleware.skills] == ["research"]


def test_missing_skill_file_is_error_result(skills):
    skills[0].path.unlink()
    middleware = SkillsMiddleware(skills)

    result = middleware._handle_tool_call(_call("research"))

    assert result.content.startswith("Error loading skill 'research'")


def test_later_skills_override_earlier_by_name(skills):
    replacement = SkillMetadata(name="research", description="Project research", path=skills[1].path, source="project")

    middleware = SkillsMiddleware([*skills, replacement])

    assert [s.description for s in middleware.skills] == ["Project research", "Write drafts"]
    assert middleware._handle_tool_call(_call("research")).content == "Loaded skill: research\n\nDraft it."


def test_other_tools_pass_through(skills):
    middleware = SkillsMiddleware(skills)
    handler = MagicMock(return_value="handled")
    request = SimpleNamespace(tool_call={"name": "ls", "args": {}, "id": "c1"})

    assert middleware._handle_tool_call(request.tool_call) is None
    assert middleware.wrap_tool_call(request, handler) == "handled"


def test_schema_injected_only_when_skills_enabled(skills):
    request = MagicMock()
    request.tools = []
    handler = MagicMock()

    SkillsMiddleware(skills).wrap_model_call(request, handler)

    tools = request.override.call_args.kwargs["tools"]
    assert [t["function"]["name"] for t in tools] == ["load_skill"]
    assert tools[0]["function"]["parameters"]["properties"]["skill_name"]["enum"] == ["research", "drafts"]

    request.reset_mock()
    SkillsMiddleware(skills, enabled_skills={"research": False, "drafts": False}).wrap_model_call(request, handler)

    request.override.assert_not_called()
    handler.assert_called_with(request)


@pytest.mark.asyncio
async def test_async_tool_call(skills):
    middleware = SkillsMiddleware(skills)

    async def handler(request):
        raise AssertionError("load_skill should be handled")

    result = await middleware.awrap_tool_call(SimpleNamespace(tool_call=_call("drafts")), handler)

    assert result.content == "Loaded skill: drafts\n\nDraft it."


def test_skills_prompt_section(skills):
    section = build_skills_prompt(skills)

    assert section.startswith("## Skills")
    assert "- **research**: Dig into sources" in section
    assert "load_skill" in section
    assert build_skills_prompt([]) == ""
    assert section in build_system_prompt(skills=skills)
    assert "## Skills" not in build_system_prompt()
