"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from conductor.utils.platform import get_config_dir, get_data_dir, get_skills_dir


class LLMConfig(BaseModel):
    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    # Per-call overrides; empty means use `model`
    planner_model: str = ""
    composer_model: str = ""
    agent_model: str = ""
    api_key: str = ""
    local_endpoint: str = "http://localhost:11434/v1"
    max_tokens: int = 4096
    temperature: float = 0.7
    max_retries: int = 3

    def model_for(self, purpose: str) -> str:
        override = {
            "planner": self.planner_model,
            "replanner": self.planner_model,
            "composer": self.composer_model,
            "agent": self.agent_model,
        }.get(purpose, "")
        return override or self.model


class OrchestratorConfig(BaseModel):
    max_execution_seconds: float = 120.0
    max_replans: int = 1
    replan_enabled: bool = True
    max_total_steps: int = 10
    max_retries_per_step: int = 2
    step_timeout_seconds: float = 60.0
    max_tool_loops: int = 5
    agent_max_tokens: int = 12_000
    planner_max_tokens: int = 1024
    fallback_agent: str = "general-agent"


class WindowConfig(BaseModel):
    max_age_hours: float = 24
    max_messages: int = 20
    max_tokens: int = 4000


class ComposerConfig(BaseModel):
    max_result_chars: int = 500
    max_tool_loops: int = 2
    max_tokens: int = 512
    max_response_chars: int = 1000
    max_facts: int = 20
    max_fact_chars: int = 1500


class RateLimitConfig(BaseModel):
    per_minute: int = 10
    dedup_retention_hours: float = 168


class SkillsConfig(BaseModel):
    enabled: bool = True
    directories: list[str] = Field(default_factory=list)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CONDUCTOR_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    window: WindowConfig = Field(default_factory=WindowConfig)
    composer: ComposerConfig = Field(default_factory=ComposerConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    skills: SkillsConfig = Field(default_factory=SkillsConfig)
    default_timezone: str = "UTC"
    data_dir: str = ""
    log_level: str = "INFO"
    log_json: bool = False

    def get_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir)
        return get_data_dir()

    def get_skill_dirs(self) -> list[Path]:
        if self.skills.directories:
            return [Path(d).expanduser() for d in self.skills.directories]
        return [get_skills_dir()]


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("CONDUCTOR_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    if overrides:
        yaml_data = _deep_merge(yaml_data, overrides)

    return Settings(**yaml_data)
