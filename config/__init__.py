"""Configuration management for deepstate."""

from .loader import AgentLoader, load_config
from .schema import DeepStateSettings
from .types import AgentConfig, SkillMetadata

__all__ = ["AgentConfig", "AgentLoader", "DeepStateSettings", "SkillMetadata", "load_config"]
