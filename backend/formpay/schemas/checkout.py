from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_name: str = Field(..., min_length=1)
    product_price: int = Field(..., gt=0, description="Price in minor units (cents)")
    customer_name: str | None = None
    customer_email: str = Field(..., min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CheckoutResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    checkout_url: str
