"""
Tests for order state machine transitions using django-fsm.

Covers every edge of the order graph, the rejected edges, and the
timestamps each transition records.
"""

import pytest
from django_fsm import TransitionNotAllowed

from orders.models import Order
from orders.state_machines import (
    ORDER_TRANSITIONS,
    TERMINAL_STATUSES,
    UNPAID_STATUSES,
    OrderStatus,
)
from orders.tests.factories import OrderFactory

# The order graph written out edge by edge: (source, transition, target)
ORDER_GRAPH_EDGES = {
    (OrderStatus.PENDING, "start_payment", OrderStatus.PAYMENT_PENDING),
    (OrderStatus.PENDING, "mark_paid", OrderStatus.PAID),
    (OrderStatus.PAYMENT_PENDING, "mark_paid", OrderStatus.PAID),
    (OrderStatus.RESERVED, "mark_paid", OrderStatus.PAID),
    (OrderStatus.PENDING, "reserve", OrderStatus.RESERVED),
    (OrderStatus.PAYMENT_PENDING, "reserve", OrderStatus.RESERVED),
    (OrderStatus.PENDING, "cancel", OrderStatus.CANCELLED),
    (OrderStatus.PAYMENT_PENDING, "cancel", OrderStatus.CANCELLED),
    (OrderStatus.RESERVED, "cancel", OrderStatus.CANCELLED),
    (OrderStatus.PAID, "refund", OrderStatus.REFUNDED),
    (OrderStatus.PAID, "ship", OrderStatus.SHIPPED),
    (OrderStatus.SHIPPED, "deliver", OrderStatus.DELIVERED),
    (OrderStatus.PENDING, "terminate", OrderStatus.TERMINATED),
    (OrderStatus.PAYMENT_PENDING, "terminate", OrderStatus.TERMINATED),
}


# =============================================================================
# Valid Transitions
# =============================================================================


class TestOrderTransitions:
    """Tests for the allowed edges of the order graph."""

    def test_pending_to_payment_pending(self, db, pending_order):
        """Should start payment and record the session id."""
        pending_order.start_payment(session_id="sess_abc")
        pending_order.save()

        assert pending_order.status == OrderStatus.PAYMENT_PENDING
        assert pending_order.gateway_session_id == "sess_abc"

    def test_payment_pending_to_paid(self, db, payment_pending_order):
        """Should mark paid and set paid_at."""
        payment_pending_order.mark_paid()
        payment_pending_order.save()

        assert payment_pending_order.status == OrderStatus.PAID
        assert payment_pending_order.paid_at is not None

    def test_pending_to_paid(self, db, pending_order):
        """A callback may confirm payment before the session was recorded."""
        pending_order.mark_paid()
        pending_order.save()

        assert pending_order.status == OrderStatus.PAID

    def test_payment_pending_to_reserved(self, db, payment_pending_order):
        """Should reserve an authorized payment."""
        payment_pending_order.reserve()
        payment_pending_order.save()

        assert payment_pending_order.status == OrderStatus.RESERVED
        assert payment_pending_order.paid_at is None

    def test_reserved_to_paid(self, db, reserved_order):
        """Capturing a reservation marks the order paid."""
        reserved_order.mark_paid()
        reserved_order.save()

        assert reserved_order.status == OrderStatus.PAID
        assert reserved_order.paid_at is not None

    def test_reserved_to_cancelled(self, db, reserved_order):
        """Cancelling a reservation records cancelled_at."""
        reserved_order.cancel()
        reserved_order.save()

        assert reserved_order.status == OrderStatus.CANCELLED
        assert reserved_order.cancelled_at is not None

    def test_payment_pending_to_cancelled(self, db, payment_pending_order):
        """A terminated payment cancels the order."""
        payment_pending_order.cancel()
        payment_pending_order.save()

        assert payment_pending_order.status == OrderStatus.CANCELLED

    def test_paid_to_refunded(self, db, paid_order):
        """A full refund records refunded_at."""
        paid_order.refund()
        paid_order.save()

        assert paid_order.status == OrderStatus.REFUNDED
        assert paid_order.refunded_at is not None

    def test_paid_to_shipped_to_delivered(self, db, paid_order):
        """Fulfilment moves PAID -> SHIPPED -> DELIVERED."""
        paid_order.ship()
        paid_order.save()
        assert paid_order.status == OrderStatus.SHIPPED
        assert paid_order.shipped_at is not None

        paid_order.deliver()
        paid_order.save()
        assert paid_order.status == OrderStatus.DELIVERED
        assert paid_order.delivered_at is not None

    def test_ship_uses_given_timestamp(self, db, paid_order):
        """Should keep an explicit shipped_at."""
        from django.utils import timezone

        shipped_at = timezone.now().replace(microsecond=0)
        paid_order.ship(shipped_at=shipped_at)
        paid_order.save()

        assert paid_order.shipped_at == shipped_at

    @pytest.mark.parametrize("status", UNPAID_STATUSES)
    def test_unpaid_to_terminated(self, db, status):
        """Abandoned unpaid orders can be terminated."""
        order = OrderFactory(status=status)
        order.terminate()
        order.save()

        assert order.status == OrderStatus.TERMINATED
        assert order.terminated_at is not None

    def test_paid_at_set_once(self, db, reserved_order):
        """paid_at is never overwritten once set."""
        from django.utils import timezone

        first = timezone.now().replace(microsecond=0)
        reserved_order.paid_at = first
        reserved_order.mark_paid()
        reserved_order.save()

        assert reserved_order.paid_at == first


# =============================================================================
# Invalid Transitions
# =============================================================================


class TestInvalidOrderTransitions:
    """Tests for edges that are not on the order graph."""

    def test_paid_cannot_cancel(self, db, paid_order):
        """Cannot cancel a captured order."""
        with pytest.raises(TransitionNotAllowed):
            paid_order.cancel()

        assert paid_order.status == OrderStatus.PAID

    def test_paid_cannot_reserve(self, db, paid_order):
        """A late authorization callback cannot move PAID backwards."""
        with pytest.raises(TransitionNotAllowed):
            paid_order.reserve()

    def test_reserved_cannot_terminate(self, db, reserved_order):
        """Reserved orders hold funds and are never reaped."""
        with pytest.raises(TransitionNotAllowed):
            reserved_order.terminate()

    def test_reserved_cannot_refund(self, db, reserved_order):
        """Nothing to refund before capture."""
        with pytest.raises(TransitionNotAllowed):
            reserved_order.refund()

    def test_pending_cannot_ship(self, db, pending_order):
        """Cannot ship an unpaid order."""
        with pytest.raises(TransitionNotAllowed):
            pending_order.ship()

    def test_payment_pending_cannot_start_payment_again(self, db, payment_pending_order):
        """start_payment only leaves PENDING."""
        with pytest.raises(TransitionNotAllowed):
            payment_pending_order.start_payment()

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
    @pytest.mark.parametrize("transition", sorted(ORDER_TRANSITIONS))
    def test_terminal_statuses_have_no_outgoing_edges(self, db, status, transition):
        """DELIVERED, CANCELLED, REFUNDED and TERMINATED are final."""
        order = OrderFactory(status=status, items=None)

        with pytest.raises(TransitionNotAllowed):
            getattr(order, transition)()

        assert Order.objects.get(pk=order.pk).status == status


# =============================================================================
# Transition Table
# =============================================================================


class TestTransitionTable:
    """Tests for the ORDER_TRANSITIONS table the model is built from."""

    def test_matches_order_graph(self):
        edges = {
            (source, name, target)
            for name, (sources, target) in ORDER_TRANSITIONS.items()
            for source in sources
        }

        assert edges == ORDER_GRAPH_EDGES

    def test_every_transition_is_a_model_method(self):
        """Each named transition exists on the Order model."""
        for name in ORDER_TRANSITIONS:
            assert callable(getattr(Order, name))

    def test_no_transition_leaves_a_terminal_status(self):
        """Terminal statuses never appear as a source."""
        for sources, _ in ORDER_TRANSITIONS.values():
            assert not set(sources) & TERMINAL_STATUSES

    def test_terminate_only_from_unpaid(self):
        """Only PENDING and PAYMENT_PENDING can be terminated."""
        sources, target = ORDER_TRANSITIONS["terminate"]

        assert set(sources) == set(UNPAID_STATUSES)
        assert target == OrderStatus.TERMINATED
