"""Pydantic schema for the per-repository .github/repo-relay.yml file.

This file is the config gate: a repository takes part in relaying only
when it carries the file with ``enabled: true``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class RepoSettings(BaseModel):
    enabled: bool = False
    # Default relay targets ("owner/repo") for commands without a target
    targets: list[str] = Field(default_factory=list)

    @field_validator("targets", mode="before")
    @classmethod
    def _coerce_targets(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value
