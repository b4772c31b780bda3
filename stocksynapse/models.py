# stocksynapse/models.py
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError


MAX_TEXT_LENGTH = 255


class ProductIn(BaseModel):
    name: str = Field(max_length=MAX_TEXT_LENGTH)
    price: float = Field(ge=0, allow_inf_nan=False)
    quantity: int = Field(ge=0)
    category: str = Field(default="", max_length=MAX_TEXT_LENGTH)
    description: str = ""

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("category", "description", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class Product(ProductIn):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)


def _describe(err: pydantic.ValidationError) -> str:
    parts = []
    for e in err.errors():
        field = ".".join(str(loc) for loc in e.get("loc", ())) or "value"
        parts.append(f"{field}: {e.get('msg')}")
    return "; ".join(parts)


def validate_product_fields(name: Any, price: Any, quantity: Any,
                            category: Any = "", description: Any = "") -> ProductIn:
    """
    Build a ProductIn from raw caller input (form or prompt strings are fine).
    Raises ValidationError with a readable message instead of pydantic's.
    """
    try:
        return ProductIn(
            name=name if name is not None else "",
            price=price,
            quantity=quantity,
            category=category,
            description=description,
        )
    except pydantic.ValidationError as e:
        raise ValidationError(_describe(e)) from e


def make_product(product_id: str, name: Any, price: Any, quantity: Any,
                 category: Any = "", description: Any = "") -> Product:
    try:
        return Product(
            id=product_id,
            name=name if name is not None else "",
            price=price,
            quantity=quantity,
            category=category,
            description=description,
        )
    except pydantic.ValidationError as e:
        raise ValidationError(_describe(e)) from e
