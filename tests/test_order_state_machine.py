import uuid
from datetime import datetime, timezone

import pytest

from app.core.errors import InvalidTransitionError, OrderClosedError
from app.models.order import Order
from app.services.order_state import (
    ACCEPTED,
    CANCELLED,
    DELIVERED,
    OUT_FOR_DELIVERY,
    PENDING,
    PREPARING,
    READY_FOR_PICKUP,
    SYSTEM_ACTOR,
    TRANSITIONS,
    Actor,
    apply_transition,
    can_transition,
)

PARTNER = Actor(id=uuid.uuid4(), role="partner")
CUSTOMER = Actor(id=uuid.uuid4(), role="customer")
COURIER = Actor(id=uuid.uuid4(), role="courier")

ALL_STATUSES = [
    PENDING,
    ACCEPTED,
    PREPARING,
    READY_FOR_PICKUP,
    OUT_FOR_DELIVERY,
    DELIVERED,
    CANCELLED,
]


def make_order(status: str = PENDING) -> Order:
    return Order(id=uuid.uuid4(), order_number="ORD-20260101-0001", status=status)


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target,role",
        [
            (PENDING, ACCEPTED, "partner"),
            (PENDING, CANCELLED, "customer"),
            (PENDING, CANCELLED, "partner"),
            (ACCEPTED, PREPARING, "partner"),
            (ACCEPTED, CANCELLED, "customer"),
            (PREPARING, READY_FOR_PICKUP, "partner"),
            (READY_FOR_PICKUP, OUT_FOR_DELIVERY, "courier"),
            (OUT_FOR_DELIVERY, DELIVERED, "courier"),
        ],
    )
    def test_allowed(self, current, target, role):
        assert can_transition(current, target, role)

    @pytest.mark.parametrize(
        "current,target,role",
        [
            (PENDING, ACCEPTED, "customer"),
            (PENDING, PREPARING, "partner"),
            (PREPARING, CANCELLED, "customer"),
            (PREPARING, CANCELLED, "partner"),
            (READY_FOR_PICKUP, OUT_FOR_DELIVERY, "partner"),
            (OUT_FOR_DELIVERY, DELIVERED, "customer"),
            (DELIVERED, CANCELLED, "customer"),
        ],
    )
    def test_rejected(self, current, target, role):
        assert not can_transition(current, target, role)

    def test_terminal_statuses_have_no_exits(self):
        for (current, _target) in TRANSITIONS:
            assert current not in (DELIVERED, CANCELLED)

    def test_every_status_reachable_from_pending(self):
        reachable = {PENDING}
        frontier = [PENDING]
        while frontier:
            current = frontier.pop()
            for (src, dst) in TRANSITIONS:
                if src == current and dst not in reachable:
                    reachable.add(dst)
                    frontier.append(dst)
        assert reachable == set(ALL_STATUSES)


class TestApplyTransition:
    def test_sets_status_timestamp_and_event(self):
        order = make_order()
        at = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

        event = apply_transition(order, ACCEPTED, PARTNER, "on it", at)

        assert order.status == ACCEPTED
        assert order.accepted_at == at
        assert event.status == ACCEPTED
        assert event.actor_id == PARTNER.id
        assert event.actor_role == "partner"
        assert event.note == "on it"
        assert event.order_id == order.id

    def test_wrong_role_leaves_order_untouched(self):
        order = make_order()

        with pytest.raises(InvalidTransitionError):
            apply_transition(order, ACCEPTED, CUSTOMER)

        assert order.status == PENDING
        assert order.accepted_at is None

    def test_skipping_a_step(self):
        with pytest.raises(InvalidTransitionError):
            apply_transition(make_order(ACCEPTED), READY_FOR_PICKUP, PARTNER)

    @pytest.mark.parametrize("status", [DELIVERED, CANCELLED])
    def test_terminal_order_is_closed(self, status):
        order = make_order(status)
        with pytest.raises(OrderClosedError):
            apply_transition(order, CANCELLED, CUSTOMER)
        assert order.status == status

    def test_system_actor_cannot_drive_the_flow(self):
        with pytest.raises(InvalidTransitionError):
            apply_transition(make_order(), ACCEPTED, SYSTEM_ACTOR)

    def test_full_happy_path(self):
        order = make_order()
        steps = [
            (ACCEPTED, PARTNER),
            (PREPARING, PARTNER),
            (READY_FOR_PICKUP, PARTNER),
            (OUT_FOR_DELIVERY, COURIER),
            (DELIVERED, COURIER),
        ]
        events = [apply_transition(order, target, actor) for target, actor in steps]

        assert [e.status for e in events] == [s for s, _ in steps]
        assert order.status == DELIVERED
        assert order.ready_at is not None
        assert order.picked_up_at is not None
        assert order.delivered_at is not None
