"""
Unit tests for OrderTimelineService.
"""

import pytest

from models.order import OperationalStatus, OrderFlowStatus
from services.order_timeline_service import OrderTimelineService, transition_reason
from exceptions import OrderNotFoundError
from tests.factories import seed_order, seed_product


@pytest.fixture
def service(repo):
    return OrderTimelineService(repo)


class TestTransitionReason:
    """Tests for transition_reason."""

    def test_known_transition(self):
        reason = transition_reason(OrderFlowStatus.NEED_PRODUCTION, OrderFlowStatus.IN_PRODUCTION)

        assert reason == "Production started"

    def test_unknown_transition_falls_back(self):
        reason = transition_reason(OrderFlowStatus.NEED_MATERIALS, OrderFlowStatus.READY_TO_SHIP)

        assert reason == "Status changed from NEED_MATERIALS to READY_TO_SHIP"

    def test_initial_status_uses_default(self):
        assert transition_reason(None, OrderFlowStatus.NEW) == "Order received and awaiting processing"


class TestGetTimeline:
    """Tests for record_transition and get_timeline."""

    def test_new_order_default_reason(self, repo, service):
        order, _ = seed_order(repo, [(seed_product(repo).id, 1)])

        timeline = service.get_timeline(order.id)

        assert timeline.current_status == OrderFlowStatus.NEW
        assert timeline.current_reason == "Order received and awaiting processing"
        assert timeline.events == []

    def test_history_in_order(self, repo, service):
        order, _ = seed_order(repo, [(seed_product(repo).id, 1)])
        service.record_transition(order.id, OrderFlowStatus.NEW, OrderFlowStatus.NEED_PRODUCTION)
        service.record_transition(order.id, OrderFlowStatus.NEED_PRODUCTION, OrderFlowStatus.IN_PRODUCTION)
        repo.update_order_flow_status(
            order.id, OrderFlowStatus.NEW, OrderFlowStatus.IN_PRODUCTION, OperationalStatus.IN_PRODUCTION
        )

        timeline = service.get_timeline(order.id)

        assert [e.status for e in timeline.events] == [
            OrderFlowStatus.NEED_PRODUCTION,
            OrderFlowStatus.IN_PRODUCTION,
        ]
        assert timeline.current_reason == "Production started"

    def test_explicit_reason_kept(self, repo, service):
        order, _ = seed_order(repo, [(seed_product(repo).id, 1)])

        event = service.record_transition(
            order.id, OrderFlowStatus.NEW, OrderFlowStatus.CANCELLED, reason="Customer asked to cancel"
        )

        assert event.reason == "Customer asked to cancel"

    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFoundError):
            service.get_timeline("missing")
