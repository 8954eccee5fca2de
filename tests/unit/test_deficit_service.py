"""
Unit tests for DeficitService.
"""

from decimal import Decimal
import pytest

from models.order import FulfillmentStatus, FulfillmentType, OperationalStatus, OrderFlowStatus
from models.production import ProductionTaskCreate
from models.deficit import ReplenishmentPriority, ReplenishmentRequestCreate
from services.deficit_service import DeficitService
from exceptions import MaterialDefinitionNotFoundError
from tests.conftest import HOME_WAREHOUSE_ID, PRODUCTION_WAREHOUSE_ID
from tests.factories import seed_lot, seed_material, seed_order, seed_product, seed_recipe


@pytest.fixture
def service(repo):
    return DeficitService(repo)


@pytest.fixture
def product(repo):
    return seed_product(repo, id="prod-p")


@pytest.fixture
def material(repo):
    return seed_material(repo, id="mat-m", name="Blank", unit="pcs")


def open_order(repo, product_id, quantity, flow=OrderFlowStatus.NEED_PRODUCTION,
               fulfillment_type=FulfillmentType.PRODUCE_ON_DEMAND):
    """Order in a demand status with one decided line."""
    order, (line,) = seed_order(repo, [(product_id, quantity)])
    repo.decide_order_line(line.id, fulfillment_type, FulfillmentStatus.PLANNED, None)
    repo.update_order_flow_status(order.id, OrderFlowStatus.NEW, flow, OperationalStatus.WAITING_FOR_PRODUCTION)
    return order, repo.get_order_line(line.id)


class TestGetMaterialDeficits:
    """Tests for get_material_deficits."""

    def test_enough_material_zero_deficit(self, repo, service, product, material):
        """needed 8, have 13 -> deficit 0."""
        seed_recipe(repo, product.id, {material.id: 2})
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 3)
        seed_lot(repo, material.id, PRODUCTION_WAREHOUSE_ID, 10)
        open_order(repo, product.id, 4)

        report = service.get_material_deficits()

        assert len(report.deficits) == 1
        deficit = report.deficits[0]
        assert deficit.needed == Decimal("8")
        assert deficit.have == Decimal("13")
        assert deficit.deficit == Decimal("0")

    def test_short_material_positive_deficit(self, repo, service, product, material):
        """needed 8, have 5 -> deficit 3."""
        seed_recipe(repo, product.id, {material.id: 2})
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 3)
        seed_lot(repo, material.id, PRODUCTION_WAREHOUSE_ID, 2)
        open_order(repo, product.id, 4, flow=OrderFlowStatus.NEED_MATERIALS)

        report = service.get_material_deficits()

        assert report.deficits[0].deficit == Decimal("3")

    def test_demand_summed_across_orders(self, repo, service, product, material):
        seed_recipe(repo, product.id, {material.id: 2})
        open_order(repo, product.id, 1)
        open_order(repo, product.id, 2, flow=OrderFlowStatus.NEED_MATERIALS)

        report = service.get_material_deficits()

        assert report.deficits[0].needed == Decimal("6")
        assert report.deficits[0].deficit == Decimal("6")

    def test_reserved_units_excluded(self, repo, service, product, material):
        seed_recipe(repo, product.id, {material.id: 1})
        _, line = open_order(repo, product.id, 5, fulfillment_type=FulfillmentType.READY_STOCK)
        repo.update_order_line(line.id, {"reserved_quantity": 3})

        report = service.get_material_deficits()

        assert report.deficits[0].needed == Decimal("2")

    def test_started_production_excluded(self, repo, service, product, material):
        """Materials of a started task are already consumed."""
        seed_recipe(repo, product.id, {material.id: 1})
        _, line = open_order(repo, product.id, 5, flow=OrderFlowStatus.IN_PRODUCTION)
        task = repo.create_production_task(ProductionTaskCreate(
            product_id=product.id, quantity=5, order_line_id=line.id
        ))
        repo.start_production_task(task.id, [])

        report = service.get_material_deficits()

        assert report.deficits == []

    def test_orders_outside_demand_ignored(self, repo, service, product, material):
        seed_recipe(repo, product.id, {material.id: 1})
        open_order(repo, product.id, 5, flow=OrderFlowStatus.READY_TO_SHIP)

        assert service.get_material_deficits().deficits == []

    def test_external_lines_ignored(self, repo, service, product, material):
        seed_recipe(repo, product.id, {material.id: 1})
        open_order(repo, product.id, 5, fulfillment_type=FulfillmentType.EXTERNAL)

        assert service.get_material_deficits().deficits == []

    def test_products_without_recipe_listed(self, repo, service, product):
        open_order(repo, product.id, 1)

        report = service.get_material_deficits()

        assert report.deficits == []
        assert report.products_without_recipe == [product.id]

    def test_sorted_by_deficit(self, repo, service, product):
        small = seed_material(repo, id="mat-small", name="A small")
        large = seed_material(repo, id="mat-large", name="B large")
        seed_recipe(repo, product.id, {small.id: 1, large.id: 3})
        open_order(repo, product.id, 2)

        report = service.get_material_deficits()

        assert [d.material_definition_id for d in report.deficits] == ["mat-large", "mat-small"]


class TestReplenishment:
    """Tests for get_replenishment_needs and create_replenishment_requests."""

    def test_needs_round_up(self, repo, service, product, material):
        seed_recipe(repo, product.id, {material.id: "0.5"})
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 1)
        open_order(repo, product.id, 5)

        needs = service.get_replenishment_needs()

        assert len(needs) == 1
        assert needs[0].quantity_needed == Decimal("2")
        assert needs[0].priority == ReplenishmentPriority.NORMAL

    def test_large_deficit_high_priority(self, repo, service, product, material):
        seed_recipe(repo, product.id, {material.id: 1})
        open_order(repo, product.id, 11)

        needs = service.get_replenishment_needs()

        assert needs[0].priority == ReplenishmentPriority.HIGH

    def test_covered_material_not_listed(self, repo, service, product, material):
        seed_recipe(repo, product.id, {material.id: 1})
        seed_lot(repo, material.id, HOME_WAREHOUSE_ID, 10)
        open_order(repo, product.id, 2)

        assert service.get_replenishment_needs() == []

    def test_requests_from_current_needs(self, repo, service, product, material):
        seed_recipe(repo, product.id, {material.id: 1})
        open_order(repo, product.id, 4)

        created = service.create_replenishment_requests()

        assert len(created) == 1
        assert created[0].material_definition_id == material.id
        assert created[0].quantity_needed == Decimal("4")
        assert len(repo.replenishment_requests) == 1

    def test_explicit_request(self, service, material):
        created = service.create_replenishment_requests([
            ReplenishmentRequestCreate(material_definition_id=material.id, quantity_needed=Decimal("50"))
        ])

        assert created[0].priority == ReplenishmentPriority.HIGH

    def test_unknown_material_rejected(self, repo, service):
        with pytest.raises(MaterialDefinitionNotFoundError):
            service.create_replenishment_requests([
                ReplenishmentRequestCreate(material_definition_id="missing", quantity_needed=Decimal("1"))
            ])

        assert repo.replenishment_requests == []
