"""
Decision Role Base

Shared plumbing for roles: render a prompt, call the DecisionClient with
the role's tier and search flag, and validate the answer into the role's
pydantic model.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ..llm import DecisionClient, MalformedResponseError
from .definitions import PREFLIGHT_BLOCK, RoleDefinition

M = TypeVar("M", bound=BaseModel)

logger = logging.getLogger(__name__)


@dataclass
class Preflight:
    """Ambient facts every planning-related prompt starts with."""

    date: str
    version: str
    location: str

    @classmethod
    def now(cls, version: str, location: str) -> "Preflight":
        return cls(date=datetime.now().strftime("%Y-%m-%d %H:%M"), version=version, location=location)

    def render(self) -> str:
        return PREFLIGHT_BLOCK.format(date=self.date, version=self.version, location=self.location)


def to_json(value: Any) -> str:
    """Pretty JSON for prompt embedding; pydantic models are dumped first."""
    if isinstance(value, BaseModel):
        value = value.model_dump()
    elif isinstance(value, list):
        value = [item.model_dump() if isinstance(item, BaseModel) else item for item in value]
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def numbered(steps: list[str]) -> str:
    return "\n".join(f"{i}. {step}" for i, step in enumerate(steps, 1)) or "(none)"


class DecisionRole:
    """Base class for a role backed by one RoleDefinition."""

    def __init__(self, client: DecisionClient, definition: RoleDefinition):
        self.client = client
        self.definition = definition

    async def _ask(self, prompt: str, model: type[M], *, use_search: Optional[bool] = None) -> M:
        raw = await self.client.call(
            prompt,
            tier=self.definition.tier,
            use_search=self.definition.use_search if use_search is None else use_search,
        )
        return self._validate(raw, model)

    def _validate(self, raw: Any, model: type[M]) -> M:
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise MalformedResponseError(
                f"{self.definition.name} answer does not match {model.__name__}: {e}"
            ) from e
