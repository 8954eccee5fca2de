"""
Test data factories.

Factories build models with sensible defaults; the seed_* helpers also
store them in an InMemoryRepository.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from models.product import Product, RecipeCreate, RecipeMaterial
from models.material import MaterialDefinition, MaterialLot, MaterialType
from models.order import ChannelHint, Order, OrderLine, OrderLineCreate, OrderUpsert

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class ProductFactory:
    """
    Factory for Product models.

    Usage:
        product = ProductFactory.create()
        product = ProductFactory.create(sku="HOODIE-BLK-M")
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        id: Optional[str] = None,
        sku: Optional[str] = None,
        name: Optional[str] = None,
        price: Optional[Decimal] = None,
    ) -> Product:
        counter = cls._next_counter()
        return Product(
            id=id or f"product-{counter}",
            sku=sku or f"SKU-{counter}",
            name=name or f"Test product {counter}",
            price=price,
        )


class MaterialDefinitionFactory:
    """Factory for MaterialDefinition models."""

    _counter = 0

    @classmethod
    def create(
        cls,
        id: Optional[str] = None,
        name: Optional[str] = None,
        type: MaterialType = MaterialType.BLANK,
        unit: str = "pcs",
    ) -> MaterialDefinition:
        cls._counter += 1
        return MaterialDefinition(
            id=id or f"material-{cls._counter}",
            name=name or f"Material {cls._counter}",
            type=type,
            unit=unit,
        )


class MaterialLotFactory:
    """
    Factory for MaterialLot models.

    `days` offsets received_at from BASE_TIME, so lower days = older lot.
    """

    @classmethod
    def create(
        cls,
        material_definition_id: str,
        warehouse_id: str,
        quantity,
        days: int = 0,
        id: Optional[str] = None,
        cost_per_unit="0",
        supplier_name: Optional[str] = None,
    ) -> MaterialLot:
        quantity = Decimal(str(quantity))
        return MaterialLot(
            id=id or f"lot-{uuid4().hex[:8]}",
            material_definition_id=material_definition_id,
            warehouse_id=warehouse_id,
            received_quantity=quantity,
            remaining_quantity=quantity,
            cost_per_unit=Decimal(str(cost_per_unit)),
            supplier_name=supplier_name,
            received_at=BASE_TIME + timedelta(days=days),
        )


# ===================
# SEED HELPERS
# ===================

def seed_product(repo, **kwargs) -> Product:
    return repo.add_product(ProductFactory.create(**kwargs))


def seed_material(repo, **kwargs) -> MaterialDefinition:
    return repo.add_material_definition(MaterialDefinitionFactory.create(**kwargs))


def seed_lot(repo, material_definition_id: str, warehouse_id: str, quantity, **kwargs) -> MaterialLot:
    return repo.add_lot(MaterialLotFactory.create(material_definition_id, warehouse_id, quantity, **kwargs))


def seed_recipe(repo, product_id: str, materials: dict):
    """Create an active recipe from {definition_id: quantity_per_unit}."""
    return repo.create_recipe(RecipeCreate(
        product_id=product_id,
        name=f"Recipe for {product_id}",
        materials=[
            RecipeMaterial(material_definition_id=definition_id, quantity_required=Decimal(str(qty)))
            for definition_id, qty in materials.items()
        ],
    ))


def seed_order(
    repo,
    lines: list[tuple[str, int]],
    channel_hint: ChannelHint = ChannelHint.SELLER_FULFILLED,
    external_id: Optional[str] = None,
    channel_status: Optional[str] = None,
) -> tuple[Order, list[OrderLine]]:
    """Create an order with one line per (product_id, quantity)."""
    external_id = external_id or f"POST-{uuid4().hex[:8]}"
    order = repo.upsert_order(OrderUpsert(
        external_id=external_id,
        order_number=external_id,
        channel_hint=channel_hint,
        channel_status=channel_status,
    ))
    created = [
        repo.create_order_line(order.id, OrderLineCreate(product_id=product_id, quantity=quantity))
        for product_id, quantity in lines
    ]
    return order, created
