"""dnsprices Pydantic models for parsed price-list data."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HeaderLocation(BaseModel):
    """Position of the header row and the data columns of a sheet."""

    model_config = ConfigDict(frozen=True)

    row: int = Field(ge=0)
    id_col: int = Field(ge=0)
    price_col: int = Field(ge=0)
    bonus_col: int = Field(ge=0)

    @property
    def name_col(self) -> int:
        # Name always sits right after the product code
        return self.id_col + 1


class PriceRow(BaseModel):
    """One product line of a price list."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "product_id": 1054236,
                "name": "Smartphone 6.1\" 128 GB black",
                "price": 45999,
                "bonus": 460,
            }
        },
    )

    product_id: int
    name: str | None = None
    price: int
    bonus: int

    @field_validator("name")
    @classmethod
    def blank_name_is_unknown(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None
