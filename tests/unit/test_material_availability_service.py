"""
Unit tests for MaterialAvailabilityService.
"""

from decimal import Decimal
import pytest

from models.material import WarehouseType
from models.product import Recipe, RecipeMaterial
from services.material_availability_service import MaterialAvailabilityService
from exceptions import MaterialDefinitionNotFoundError
from tests.conftest import HOME_WAREHOUSE_ID, PRODUCTION_WAREHOUSE_ID
from tests.factories import seed_lot, seed_material


@pytest.fixture
def service(repo):
    return MaterialAvailabilityService(repo)


@pytest.fixture
def material(repo):
    return seed_material(repo, id="mat-1", name="Blank hoodie", unit="pcs")


class TestAvailable:
    """Tests for available and available_by_warehouse."""

    def test_sums_lots(self, repo, service, material):
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 3)
        seed_lot(repo, material.id, PRODUCTION_WAREHOUSE_ID, "2.5")

        assert service.available(material.id) == Decimal("5.5")
        assert service.available(material.id, warehouse_id=HOME_WAREHOUSE_ID) == Decimal("3")

    def test_unknown_definition_is_zero(self, service):
        assert service.available("missing") == Decimal("0")

    def test_by_warehouse(self, repo, service, material):
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 3)
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 1, days=1)
        seed_lot(repo, material.id, PRODUCTION_WAREHOUSE_ID, 6)

        totals = service.available_by_warehouse(material.id)

        assert totals == {HOME_WAREHOUSE_ID: Decimal("4"), PRODUCTION_WAREHOUSE_ID: Decimal("6")}


class TestFindShortages:
    """Tests for find_shortages."""

    def recipe(self, *materials):
        return Recipe(
            id="recipe-1",
            product_id="prod-1",
            materials=[
                RecipeMaterial(material_definition_id=def_id, quantity_required=Decimal(str(qty)))
                for def_id, qty in materials
            ],
        )

    def test_enough_across_warehouses(self, repo, service, material):
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 2)
        seed_lot(repo, material.id, PRODUCTION_WAREHOUSE_ID, 2)

        assert service.find_shortages(self.recipe((material.id, 2)), 2) == []

    def test_shortage_reported(self, repo, service, material):
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 1)

        (missing,) = service.find_shortages(self.recipe((material.id, "1.5")), 2)

        assert missing.name == "Blank hoodie"
        assert missing.required == Decimal("3.0")
        assert missing.available == Decimal("1")
        assert missing.shortage == Decimal("2.0")


class TestGetAvailability:
    """Tests for the summary views."""

    def test_summary(self, repo, service, material):
        seed_lot(repo, material.id, PRODUCTION_WAREHOUSE_ID, 2, cost_per_unit="4.00")
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 6, cost_per_unit="2.00")
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 0, cost_per_unit="99")

        summary = service.get_availability(material.id)

        assert summary.total_quantity == Decimal("8")
        assert summary.lot_count == 2
        assert summary.avg_cost_per_unit == Decimal("2.50")
        assert [w.warehouse_type for w in summary.warehouses] == [
            WarehouseType.HOME,
            WarehouseType.PRODUCTION_CENTER,
        ]

    def test_no_lots(self, service, material):
        summary = service.get_availability(material.id)

        assert summary.total_quantity == Decimal("0")
        assert summary.avg_cost_per_unit == Decimal("0")
        assert summary.warehouses == []

    def test_unknown_definition(self, service):
        with pytest.raises(MaterialDefinitionNotFoundError):
            service.get_availability("missing")

    def test_list_covers_every_definition(self, repo, service, material):
        seed_material(repo, id="mat-2")

        assert {s.material_definition_id for s in service.list_availability()} == {"mat-1", "mat-2"}
