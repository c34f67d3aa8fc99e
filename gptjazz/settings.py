from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_STYLE, GENERATOR_MODEL

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _env_float(env: Mapping[str, str], name: str) -> float | None:
    value = env.get(name, "").strip()
    if not value:
        return None
    return float(value)


class Settings(BaseModel):
    """Application settings, read once from the environment."""

    model: str = GENERATOR_MODEL
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    debug: bool = False
    style: str = DEFAULT_STYLE
    api_key: str | None = None
    organization: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if env is None else env
        return cls(
            model=env.get("GPTJAZZ_MODEL", "").strip() or GENERATOR_MODEL,
            temperature=_env_float(env, "GPTJAZZ_TEMPERATURE"),
            debug=_env_flag(env, "GPTJAZZ_DEBUG"),
            style=env.get("GPTJAZZ_STYLE", "").strip() or DEFAULT_STYLE,
            api_key=env.get("OPENAI_API_KEY") or None,
            organization=env.get("OPENAI_ORGANIZATION_ID") or None,
        )
