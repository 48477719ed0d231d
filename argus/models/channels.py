"""
Notification channel model.

Models:
    ChannelType: Supported delivery transports
    NotificationChannel: A configured delivery target
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from argus.models.common import utcnow


class ChannelType(str, Enum):
    """
    Notification transports.

    Attributes:
        EMAIL: SMTP delivery; config needs ``recipients``.
        WEBHOOK: JSON POST; config needs ``url``.
        SLACK: Slack incoming webhook; config needs ``webhook_url``.
    """

    EMAIL = "email"
    WEBHOOK = "webhook"
    SLACK = "slack"


# Config keys each channel type requires
REQUIRED_CONFIG_KEYS: Dict[ChannelType, str] = {
    ChannelType.EMAIL: "recipients",
    ChannelType.WEBHOOK: "url",
    ChannelType.SLACK: "webhook_url",
}


class NotificationChannel(BaseModel):
    """
    A configured notification target.

    Attributes:
        id: Unique channel identifier (referenced by rules).
        name: Human-readable name.
        type: Delivery transport.
        config: Transport-specific settings.
        enabled: Disabled channels are skipped by the dispatcher.
        created_at: Creation time.

    Example:
        >>> channel = NotificationChannel(
        ...     name="ops-webhook",
        ...     type=ChannelType.WEBHOOK,
        ...     config={"url": "https://hooks.example.com/argus"},
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique channel identifier",
    )
    name: str = Field(..., description="Channel name", min_length=1, max_length=200)
    type: ChannelType = Field(..., description="Delivery transport")
    config: Dict[str, Any] = Field(
        default_factory=dict,
        description="Transport-specific settings",
    )
    enabled: bool = Field(default=True, description="Whether the channel is used")
    created_at: datetime = Field(default_factory=utcnow, description="Creation time")

    @model_validator(mode="after")
    def check_config_for_type(self) -> "NotificationChannel":
        """Validate that the config carries what the transport needs."""
        key = REQUIRED_CONFIG_KEYS[self.type]
        value = self.config.get(key)

        if self.type == ChannelType.EMAIL:
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list) or not value:
                raise ValueError("email channels need a non-empty 'recipients' list")
            if not all(isinstance(r, str) and "@" in r for r in value):
                raise ValueError("email recipients must be addresses")
            return self

        if not isinstance(value, str) or not value.startswith(("http://", "https://")):
            raise ValueError(f"{self.type.value} channels need an http(s) '{key}'")
        return self

    @property
    def recipients(self) -> list:
        """Email recipients as a list (empty for other transports)."""
        value = self.config.get("recipients", [])
        if isinstance(value, str):
            return [value]
        return list(value)
