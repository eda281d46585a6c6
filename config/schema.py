"""Runtime configuration schema for deepstate using Pydantic.

This module defines the configuration structure with:
- Nested config groups (eviction, summarization, checkpoint, backend, subagents, skills)
- Field validators for paths and route prefixes
- Saver-specific checks (file saver needs a directory)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from core.eviction.evict import DEFAULT_TOKEN_LIMIT
from core.eviction.middleware import TOOLS_EXCLUDED_FROM_EVICTION
from core.memory.summarization import DEFAULT_KEEP_MESSAGES, DEFAULT_SUMMARIZATION_THRESHOLD
from core.model_catalog import DEFAULT_MODELS, DEFAULT_PROVIDER

DEFAULT_MODEL = f"{DEFAULT_PROVIDER}/{DEFAULT_MODELS[DEFAULT_PROVIDER]}"

# ============================================================================
# Context management
# ============================================================================


class EvictionConfig(BaseModel):
    """Configuration for oversized tool-result eviction.

    Field names match EvictionMiddleware constructor for direct passthrough.
    """

    enabled: bool = Field(True, description="Evict oversized tool results to the backend")
    token_limit: int = Field(DEFAULT_TOKEN_LIMIT, gt=0, description="Evict results estimated above this")
    excluded_tools: list[str] = Field(
        default_factory=lambda: sorted(TOOLS_EXCLUDED_FROM_EVICTION),
        description="Tools whose results are never evicted",
    )


class SummarizationConfig(BaseModel):
    """Configuration for history summarization.

    Field names match MemoryMiddleware constructor for direct passthrough.
    """

    enabled: bool = Field(True, description="Summarize history above the threshold")
    token_threshold: int = Field(DEFAULT_SUMMARIZATION_THRESHOLD, gt=0, description="Summarize above this estimate")
    keep_messages: int = Field(DEFAULT_KEEP_MESSAGES, ge=0, description="Recent messages kept verbatim")
    model: str | None = Field(None, description="Model used for summaries (defaults to the agent model)")


# ============================================================================
# Persistence
# ============================================================================


class CheckpointConfig(BaseModel):
    """Checkpoint saver selection."""

    saver: Literal["memory", "file", "kv"] = Field("memory", description="Saver implementation")
    directory: str | None = Field(None, description="Directory for the file saver")
    namespace: str | None = Field(None, description="Key namespace for the kv saver")
    database: str | None = Field(None, description="SQLite database file for the kv saver")

    @model_validator(mode="after")
    def validate_saver_options(self) -> CheckpointConfig:
        if self.saver == "file" and not self.directory:
            raise ValueError("checkpoint.directory is required when checkpoint.saver is 'file'")
        return self


class RouteConfig(BaseModel):
    """One composite-backend route: paths under ``prefix`` go to ``kind``."""

    kind: Literal["state", "filesystem", "persistent"] = "persistent"
    root_dir: str | None = None
    namespace: str = "default"


class BackendConfig(BaseModel):
    """Default backend plus optional prefix routes."""

    kind: Literal["state", "filesystem"] = Field("state", description="Default backend")
    root_dir: str | None = Field(None, description="Root for the filesystem backend")
    virtual_mode: bool = Field(True, description="Treat paths as virtual, rooted at root_dir")
    max_file_size_mb: int = Field(10, gt=0, description="Largest file the filesystem backend reads")
    database: str | None = Field(None, description="SQLite database file for persistent routes")
    routes: dict[str, RouteConfig] = Field(default_factory=dict, description="Prefix -> backend routes")

    @field_validator("routes")
    @classmethod
    def validate_route_prefixes(cls, v: dict[str, RouteConfig]) -> dict[str, RouteConfig]:
        for prefix in v:
            if not prefix.startswith("/") or prefix.strip("/") == "":
                raise ValueError(f"Route prefix must be an absolute, non-root path: {prefix!r}")
        return v


# ============================================================================
# Tools
# ============================================================================


class FileSystemToolsConfig(BaseModel):
    """Per-tool switches for filesystem middleware."""

    ls: bool = True
    read_file: bool = True
    write_file: bool = True
    edit_file: bool = True
    glob: bool = True
    grep: bool = True


class SubagentConfig(BaseModel):
    """Configuration for the task tool."""

    enabled: bool = True
    max_steps: int = Field(50, gt=0, description="Step bound for each subagent run")
    include_general_purpose: bool = Field(True, description="Offer the built-in general-purpose agent")


class SkillsConfig(BaseModel):
    """SKILL.md discovery and the load_skill tool."""

    enabled: bool = Field(True, description="Discover skills and offer the load_skill tool")
    enabled_skills: dict[str, bool] = Field(default_factory=dict, description="Skill name -> enabled (missing = enabled)")


class ApprovalConfig(BaseModel):
    """Human-in-the-loop gating: tool name -> require approval."""

    interrupt_on: dict[str, bool] = Field(default_factory=dict)


# ============================================================================
# Main Settings
# ============================================================================


class DeepStateSettings(BaseModel):
    """Main deepstate configuration.

    Configuration priority (highest to lowest):
    1. CLI overrides
    2. Project config (.deepstate/runtime.json)
    3. User config (~/.deepstate/runtime.json)
    4. System defaults (config/defaults/runtime.json)
    """

    model: str = Field(DEFAULT_MODEL, description="Default model as provider/name")
    model_kwargs: dict = Field(default_factory=dict, description="Extra kwargs for init_chat_model")
    max_steps: int = Field(100, gt=0, description="Step bound for the main loop")
    system_prompt: str | None = Field(None, description="Custom system prompt")
    workspace_root: str | None = Field(None, description="Workspace root directory")

    eviction: EvictionConfig = Field(default_factory=EvictionConfig)
    summarization: SummarizationConfig = Field(default_factory=SummarizationConfig)
    checkpoint: CheckpointConfig = Field(default_factory=CheckpointConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    filesystem: FileSystemToolsConfig = Field(default_factory=FileSystemToolsConfig)
    subagents: SubagentConfig = Field(default_factory=SubagentConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    skills: SkillsConfig = Field(default_factory=SkillsConfig)

    @field_validator("workspace_root")
    @classmethod
    def validate_workspace_root(cls, v: str | None) -> str | None:
        """Validate workspace_root exists."""
        if v is None:
            return v
        path = Path(v).expanduser().resolve()
        if not path.exists():
            raise ValueError(f"Workspace root does not exist: {path}")
        if not path.is_dir():
            raise ValueError(f"Workspace root is not a directory: {path}")
        return str(path)
