"""Data models for the dependency policy filter."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CapabilitySignature(BaseModel):
    """A denylisted capability and the pattern that reveals it in source text."""

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(..., description="Regular expression, matched case-insensitively.")
    capability: str = Field(..., description="Human name of the capability (e.g. 'Playwright').")
    reason: str = Field(default="", description="Why the sandbox cannot support it.")

    @field_validator("pattern")
    @classmethod
    def _must_compile(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            msg = f"invalid capability pattern {value!r}: {exc}"
            raise ValueError(msg) from exc
        return value


class PolicyConfig(BaseModel):
    """Configuration for the dependency policy filter."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Master switch for capability screening.")
    include_defaults: bool = Field(default=True, description="Screen against the built-in denylist.")
    signatures: list[CapabilitySignature] = Field(
        default_factory=list,
        description="Extra signatures, checked after the built-in ones (first match wins).",
    )


class PolicyViolation(BaseModel):
    """Why a submission was refused before reaching a sandbox."""

    model_config = ConfigDict(frozen=True)

    capability: str
    human_reason: str
    source: str = Field(default="code", description="Which text matched: 'code' or 'build_descriptor'.")
