from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    obj: dict[str, Any] = Field(default_factory=dict, alias="object")


class StripeEvent(BaseModel):
    """Envelope of a Stripe webhook event. Only parsed after verification."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Provider event ID")
    type: str = Field(..., description="Event type, e.g. checkout.session.completed")
    data: StripeEventData = Field(default_factory=StripeEventData)
