"""System prompt sections for the main agent and its subagents."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from config.types import SkillMetadata

BASE_PROMPT = (
    "In order to complete the objective that the user asks of you, "
    "you have access to a number of standard tools."
)

TODO_SYSTEM_PROMPT = """## `write_todos` (task planning)

Use the `write_todos` tool to plan and track complex work.

Use it for:
1. Multi-step tasks (3+ distinct steps)
2. Tasks that need careful planning
3. Capturing new requirements as todos
4. Marking finished work completed and adding follow-ups

Skip it for single, trivial or purely conversational requests.

Statuses: pending, in_progress, completed, cancelled.
Keep only ONE item in_progress at a time and mark items completed as soon as they are done."""

FILESYSTEM_SYSTEM_PROMPT = """## Filesystem

You have access to a filesystem. All file paths must start with a /.

- ls: list files in a directory
- read_file: read a file (use offset/limit for large files)
- write_file: create or overwrite a file
- edit_file: replace an exact string in a file
- glob: find files matching a pattern (e.g. "**/*.py")
- grep: search file contents with a regular expression

Very large tool results are saved under /large_tool_results/ and replaced with a short preview;
read them back with read_file when you need the details."""

TASK_SYSTEM_PROMPT = """## `task` (subagent spawner)

Use the `task` tool to hand an isolated, multi-step piece of work to a short-lived subagent.
The subagent shares your filesystem, runs to completion, and returns a single result.

Use it when the work is self-contained and would otherwise flood this conversation with detail.
Do not use it for trivial lookups or when you need to see the intermediate steps."""

DEFAULT_GENERAL_PURPOSE_DESCRIPTION = (
    "General-purpose agent for researching complex questions, searching for files and content, "
    "and executing multi-step tasks. It has access to the same file and todo tools as the main agent."
)

DEFAULT_SUBAGENT_PROMPT = BASE_PROMPT


def build_skills_prompt(skills: list[SkillMetadata]) -> str:
    if not skills:
        return ""
    skills_list = "\n".join(f"- **{skill.name}**: {skill.description}" for skill in skills)
    return f"""## Skills

You have access to a skills library providing specialized domain knowledge and workflows.

**Available Skills:**

{skills_list}

**How to use skills:**

1. Check whether the user's task matches a skill's domain
2. Call `load_skill` with the skill's name to read its full instructions
3. Follow the skill's workflow step by step

Always load a skill before relying on it."""


def build_system_prompt(
    custom_prompt: str = "",
    include_task: bool = True,
    skills: list[SkillMetadata] | None = None,
) -> str:
    sections = [custom_prompt.strip()] if custom_prompt.strip() else []
    sections.extend([BASE_PROMPT, TODO_SYSTEM_PROMPT, FILESYSTEM_SYSTEM_PROMPT])
    if include_task:
        sections.append(TASK_SYSTEM_PROMPT)
    if skills:
        sections.append(build_skills_prompt(skills))
    return "\n\n".join(sections)


def get_task_tool_description(subagent_descriptions: list[str]) -> str:
    agents = "\n".join(subagent_descriptions)
    return f"""Launch a subagent to handle a complex, multi-step task in its own context window.

Available agent types:
{agents}

Usage notes:
1. The subagent returns one final message. Summarize it for the user if they need to see it.
2. Each invocation is stateless: put every detail the subagent needs in the description, and say exactly what it should report back.
3. Subagents run one at a time; the call returns only after the subagent has finished.
4. Files the subagent writes are visible to you immediately."""
