"""Filesystem skills: ``<root>/<skill>/SKILL.md`` with YAML frontmatter.

A skill directory looks like::

    receipt-summarizer/
        SKILL.md          # frontmatter + instructions
        references/       # optional extra context appended to the prompt

Frontmatter::

    ---
    name: receipt-summarizer
    description: Summarize receipts and totals
    metadata:
      conductor:
        channels: [sms, whatsapp]
        tools: [resolve_date]
        match: [receipt, total]
        enabled: true
    ---
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

from conductor.errors import SkillLoadError
from conductor.models import TargetType
from conductor.utils.logging import get_logger

log = get_logger(__name__)

SKILL_FILE = "SKILL.md"
VALID_CHANNELS = ("sms", "whatsapp", "email", "scheduler", "cli")
DEFAULT_CHANNELS = ("sms", "whatsapp")
RESOURCE_DIRS = ("references", "scripts", "assets")

_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")
_FRONTMATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)(.*)\Z", re.DOTALL)


@dataclass
class SkillDefinition:
    name: str
    description: str
    instructions: str
    path: Path
    channels: list[str] = field(default_factory=lambda: list(DEFAULT_CHANNELS))
    tools: list[str] = field(default_factory=list)
    match_hints: list[str] = field(default_factory=list)
    enabled: bool = True

    @property
    def kind(self) -> TargetType:
        return TargetType.SKILL

    @property
    def root_dir(self) -> Path:
        return self.path.parent

    def supports(self, channel: str) -> bool:
        return self.enabled and channel in self.channels

    def system_prompt(self) -> str:
        sections = [
            f'You are executing the "{self.name}" skill.',
            "",
            "## Skill Instructions",
            "",
            self.instructions,
        ]
        for dir_name in RESOURCE_DIRS:
            resource_dir = self.root_dir / dir_name
            if not resource_dir.is_dir():
                continue
            for resource in sorted(p for p in resource_dir.rglob("*") if p.is_file()):
                try:
                    content = resource.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError):
                    log.warning("skill_resource_unreadable", skill=self.name, path=str(resource))
                    continue
                rel = resource.relative_to(self.root_dir).as_posix()
                sections.extend(["", f"## Resource: {rel}", "", content])
        return "\n".join(sections)


@dataclass
class SkillLoadFailure:
    skill_dir: Path
    error: str


def parse_skill_md(raw: str) -> tuple[dict[str, Any], str]:
    """Split SKILL.md text into (frontmatter, body)."""
    match = _FRONTMATTER_RE.match(raw.lstrip("\ufeff"))
    if not match:
        raise SkillLoadError("SKILL.md must start with YAML frontmatter")
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise SkillLoadError(f"Invalid YAML frontmatter: {e}") from e
    if not isinstance(data, dict):
        raise SkillLoadError("SKILL.md frontmatter must be a mapping")
    return data, match.group(2).strip()


def _string_list(meta: dict[str, Any], key: str) -> list[str] | None:
    value = meta.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise SkillLoadError(f"metadata.conductor.{key} must be a list of non-empty strings")
    return [v.strip() for v in value]


def validate_frontmatter(data: dict[str, Any]) -> list[str]:
    """Return human-readable problems with ``data`` (empty means valid)."""
    problems: list[str] = []
    name = data.get("name")
    if not isinstance(name, str) or not name:
        problems.append("name is required and must be a string")
    elif not _NAME_RE.match(name):
        problems.append("name must be lowercase alphanumeric with hyphens")

    if not isinstance(data.get("description"), str) or not data["description"].strip():
        problems.append("description is required and must be a string")

    metadata = data.get("metadata") or {}
    meta = (metadata.get("conductor") or {}) if isinstance(metadata, dict) else None
    if not isinstance(meta, dict):
        problems.append("metadata.conductor must be a mapping")
        return problems

    for key in ("channels", "tools", "match"):
        try:
            values = _string_list(meta, key)
        except SkillLoadError as e:
            problems.append(str(e))
            continue
        if key == "channels" and values:
            bad = [c for c in values if c not in VALID_CHANNELS]
            if bad:
                problems.append(f"invalid channel(s): {', '.join(bad)}")

    if "enabled" in meta and not isinstance(meta["enabled"], bool):
        problems.append("metadata.conductor.enabled must be a boolean")
    return problems


def load_skill(skill_dir: Path) -> SkillDefinition:
    path = skill_dir / SKILL_FILE
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SkillLoadError(f"Cannot read {path}: {e}") from e

    data, body = parse_skill_md(raw)
    problems = validate_frontmatter(data)
    if problems:
        raise SkillLoadError("; ".join(problems))
    if not body:
        raise SkillLoadError("SKILL.md has no instructions")

    meta = (data.get("metadata") or {}).get("conductor") or {}
    return SkillDefinition(
        name=data["name"],
        description=data["description"].strip(),
        instructions=body,
        path=path,
        channels=_string_list(meta, "channels") or list(DEFAULT_CHANNELS),
        tools=_string_list(meta, "tools") or [],
        match_hints=_string_list(meta, "match") or [],
        enabled=meta.get("enabled", True),
    )


def load_skills(roots: Iterable[Path]) -> tuple[list[SkillDefinition], list[SkillLoadFailure]]:
    """Load every skill under ``roots``. Bad skills are reported, not raised.

    When two roots define the same skill name the first one wins.
    """
    skills: dict[str, SkillDefinition] = {}
    failures: list[SkillLoadFailure] = []

    for root in roots:
        if not root.is_dir():
            log.debug("skills_dir_missing", path=str(root))
            continue
        for skill_dir in sorted(p for p in root.iterdir() if p.is_dir()):
            if not (skill_dir / SKILL_FILE).is_file():
                continue
            try:
                skill = load_skill(skill_dir)
            except SkillLoadError as e:
                log.warning("skill_load_failed", path=str(skill_dir), error=str(e))
                failures.append(SkillLoadFailure(skill_dir=skill_dir, error=str(e)))
                continue
            if skill.name in skills:
                log.warning("skill_shadowed", skill=skill.name, path=str(skill_dir))
                continue
            skills[skill.name] = skill

    log.info("skills_loaded", count=len(skills), failed=len(failures))
    return list(skills.values()), failures


def match_skill(
    message: str,
    channel: str,
    skills: Iterable[SkillDefinition],
    threshold: float = 0.5,
) -> SkillDefinition | None:
    """Best keyword match for background triggers that bypass the planner."""
    text = message.lower()
    best: SkillDefinition | None = None
    best_score = 0.0
    for skill in skills:
        if not skill.supports(channel) or not skill.match_hints:
            continue
        hits = sum(1 for hint in skill.match_hints if hint.lower() in text)
        score = hits / len(skill.match_hints)
        if hits and score >= threshold and score > best_score:
            best, best_score = skill, score
    return best
