"""Pydantic models shared across the API, tracker and generation service.

Terms used in this file:
- Request status: lifecycle state of one submitted prompt.
- Frame payload: the JSON body a frame client posts back on button press.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Request lifecycle states used by tracker + frame responses.
RequestStatus = Literal["processing", "completed", "error"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "error"})

class FrameRequest(BaseModel):
    """One tracked prompt submission."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    # Raw prompt text, passed through unmodified to the external tool.
    prompt: str
    status: RequestStatus = "processing"
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class UntrustedData(BaseModel):
    """Client-reported fields; not signature-verified."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    input_text: str | None = Field(default=None, alias="inputText")


class FramePayload(BaseModel):
    """Body posted by the frame client."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    untrusted_data: UntrustedData = Field(default_factory=UntrustedData, alias="untrustedData")

    @property
    def prompt(self) -> str | None:
        text = self.untrusted_data.input_text
        if not text:
            return None
        return text
