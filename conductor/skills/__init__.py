"""Filesystem skills loaded from SKILL.md files."""

from conductor.skills.loader import (
    SkillDefinition,
    SkillLoadFailure,
    load_skill,
    load_skills,
    match_skill,
)

__all__ = ["SkillDefinition", "SkillLoadFailure", "load_skill", "load_skills", "match_skill"]
