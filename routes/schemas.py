"""
Request body schemas.

Structural checks only (types, presence, email format). Business rules
such as quantity limits, size ranges and prices, including zero or negative
values, are enforced by the cart validator so every line's problems are
reported together.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError


class CheckoutItem(BaseModel):
    """One cart line as sent by the storefront."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1, description="Storefront product id")
    name: str = Field(..., description="Display name")
    price: Decimal = Field(..., description="Unit price the customer saw")
    quantity: int = Field(..., description="Units requested")
    size: Optional[Union[int, str]] = Field(None, description="Ring size, null for unsized products")
    color: Optional[str] = None
    colorName: Optional[str] = None
    category: Optional[str] = None


class CreateCheckoutRequest(BaseModel):
    """POST /api/stripe/create-checkout-session body."""

    items: List[CheckoutItem] = Field(..., min_length=1)
    customerEmail: EmailStr
    successUrl: str = Field(..., min_length=1)
    cancelUrl: str = Field(..., min_length=1)


def format_errors(error: ValidationError) -> List[Dict[str, Any]]:
    """Flatten pydantic errors into [{"field": "items.0.price", "message": ...}]."""
    return [
        {
            "field": ".".join(str(part) for part in detail["loc"]),
            "message": detail["msg"],
        }
        for detail in error.errors()
    ]
