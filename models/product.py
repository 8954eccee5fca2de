"""
Product and recipe schemas.

A recipe is the bill of materials for ONE unit of a product. A product
has at most one active recipe; older recipes are deactivated, never
deleted.
"""

from pydantic import Field, field_validator
from typing import Optional
from decimal import Decimal

from models.base import BaseSchema, TimestampMixin


class Product(TimestampMixin, BaseSchema):
    """Sellable finished product."""

    id: str = Field(..., description="Product UUID")
    sku: str = Field(..., min_length=1, max_length=100, description="Seller SKU (channel offer id)")
    name: str = Field(default="", max_length=255, description="Display name")
    price: Optional[Decimal] = Field(None, ge=0, description="Current list price")
    is_active: bool = Field(default=True, description="Whether product is sold")

    @field_validator("sku")
    @classmethod
    def sku_trimmed(cls, v: str) -> str:
        return v.strip()


class RecipeMaterial(BaseSchema):
    """One material requirement of a recipe, per unit produced."""

    material_definition_id: str = Field(..., description="Material definition UUID")
    quantity_required: Decimal = Field(..., gt=0, description="Quantity needed per unit produced")


class Recipe(TimestampMixin, BaseSchema):
    """Bill of materials for one product."""

    id: str = Field(..., description="Recipe UUID")
    product_id: str = Field(..., description="Product UUID")
    name: str = Field(default="", max_length=255)
    is_active: bool = Field(default=True)
    materials: list[RecipeMaterial] = Field(default_factory=list)


class RecipeCreate(BaseSchema):
    """
    Create a recipe for a product.

    Becomes the active recipe; any previous active recipe is deactivated.
    """

    product_id: str = Field(..., min_length=1, description="Product UUID")
    name: str = Field(default="", max_length=255)
    materials: list[RecipeMaterial] = Field(..., min_length=1)

    @field_validator("materials")
    @classmethod
    def unique_materials(cls, v: list[RecipeMaterial]) -> list[RecipeMaterial]:
        """Each material may appear once per recipe."""
        ids = [m.material_definition_id for m in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate material in recipe")
        return v


class RecipeUpdate(BaseSchema):
    """Replace a recipe's name and materials in place."""

    name: Optional[str] = Field(None, max_length=255)
    materials: list[RecipeMaterial] = Field(..., min_length=1)

    @field_validator("materials")
    @classmethod
    def unique_materials(cls, v: list[RecipeMaterial]) -> list[RecipeMaterial]:
        ids = [m.material_definition_id for m in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate material in recipe")
        return v
