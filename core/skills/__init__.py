"""Skills middleware - on-demand SKILL.md instructions."""

from .middleware import SkillsMiddleware

__all__ = ["SkillsMiddleware"]
