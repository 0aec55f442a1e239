from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RelayMessage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Literal["system", "user", "assistant"]
    content: str


class RelayRequest(BaseModel):
    """
    Body of POST /v1/chat. Generation parameters are not accepted from the
    caller; model/temperature/max_tokens come from server configuration.
    """

    model_config = ConfigDict(extra="forbid")

    messages: list[RelayMessage] = Field(..., min_length=1)


__all__ = ["RelayMessage", "RelayRequest"]
