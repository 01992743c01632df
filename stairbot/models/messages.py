"""
Transport Boundary Models

The chat transport converts whatever it receives into an
InboundMessage and renders the CommandResult it gets back.
The core never talks to the transport directly.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from stairbot.models.ledger import UserRecord
from stairbot.models.reports import DailySeries


class InboundMessage(BaseModel):
    """A single text message from a user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(
        ...,
        min_length=1,
        description="Opaque transport user id"
    )
    text: str = Field(
        default="",
        description="Raw message text"
    )
    display_name_hint: Optional[str] = Field(
        default=None,
        description="Transport-side name (e.g. username), used as fallback"
    )

    @property
    def command(self) -> Optional[str]:
        """Lower-cased command word without the slash, or None for plain text."""
        if not self.text.startswith("/"):
            return None
        head = self.text.split()[0][1:]
        # "/stairs@SomeBot" -> "stairs"
        return head.split("@", 1)[0].lower()

    @property
    def args(self) -> list[str]:
        """Whitespace-separated words after the command."""
        return self.text.split()[1:]


class CommandResult(BaseModel):
    """What the core hands back to the transport."""

    success: bool
    message: str
    data: Optional[Union[UserRecord, list[UserRecord], DailySeries]] = None
    # Replies that contain a fixed-width table
    monospace: bool = False
