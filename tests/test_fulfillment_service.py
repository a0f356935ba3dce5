from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from fakes import InMemoryStore

from app.errors import NotFoundError, ValidationError
from app.models import OrderStatus
from app.services.count_session_service import CountingSession, build_order, submit_order
from app.services.fulfillment_service import (
    clear_all_fulfillment,
    derive_status,
    fulfillment_summary,
    set_status_manually,
    sort_lines_for_display,
    toggle_fulfilled,
)
from app.services.records import OrderLineRecord, OrderRecord

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _line(line_id: int, *, needs_ordering: bool = True, fulfilled: bool = False, at: datetime | None = None):
    return OrderLineRecord(
        id=line_id,
        order_id=1,
        product_id=line_id,
        item_name_snapshot=f'Item {line_id}',
        unit_snapshot='ea',
        counted_quantity_snapshot=1,
        minimum_threshold_snapshot=5,
        checkbox_only_snapshot=False,
        needs_ordering=needs_ordering,
        fulfilled=fulfilled,
        fulfilled_by='Kim' if fulfilled else None,
        fulfilled_at=at if fulfilled else None,
    )


def _submit(store: InMemoryStore, counts: dict[str, int], *, flags: dict[str, bool] | None = None) -> OrderRecord:
    location_id = store.add_location()
    ids = {}
    for name, threshold in [('Beans', 10), ('Milk', 6), ('Cups', 100)]:
        ids[name] = store.add_product(name, unit='ea', minimum_threshold=threshold).id
    session = CountingSession(location_id, store.list_catalog())
    for name, qty in counts.items():
        session.set_quantity(ids[name], qty)
    for name, flagged in (flags or {}).items():
        session.set_flag(ids[name], flagged)
    return submit_order(store, build_order(location_id=location_id, submitted_by='Sam', note=None, session=session))


class DeriveStatusTests(unittest.TestCase):
    def test_boundaries_for_three_eligible_lines(self) -> None:
        self.assertEqual(derive_status([_line(1), _line(2), _line(3)]), OrderStatus.PENDING)
        self.assertEqual(derive_status([_line(1, fulfilled=True), _line(2), _line(3)]), OrderStatus.IN_PROGRESS)
        self.assertEqual(
            derive_status([_line(1, fulfilled=True), _line(2, fulfilled=True), _line(3)]),
            OrderStatus.IN_PROGRESS,
        )
        self.assertEqual(
            derive_status([_line(1, fulfilled=True), _line(2, fulfilled=True), _line(3, fulfilled=True)]),
            OrderStatus.COMPLETED,
        )

    def test_ineligible_lines_are_ignored(self) -> None:
        lines = [_line(1, fulfilled=True), _line(2, needs_ordering=False)]
        self.assertEqual(derive_status(lines), OrderStatus.COMPLETED)

    def test_no_eligible_lines_is_degenerate(self) -> None:
        self.assertIsNone(derive_status([_line(1, needs_ordering=False)]))
        self.assertIsNone(derive_status([]))


class ToggleFulfilledTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()

    def test_beans_toggle_completes_then_returns_to_pending(self) -> None:
        order = _submit(self.store, {'Beans': 4})
        line_id = order.lines[0].id
        self.assertEqual(order.status, OrderStatus.PENDING)

        order = toggle_fulfilled(self.store, order_id=order.id, line_id=line_id, actor='Kim', now=T0)
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertEqual(order.line(line_id).fulfilled_by, 'Kim')
        self.assertEqual(order.line(line_id).fulfilled_at, T0)

        order = toggle_fulfilled(self.store, order_id=order.id, line_id=line_id, actor='Kim', now=T0)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertIsNone(order.line(line_id).fulfilled_by)
        self.assertIsNone(order.line(line_id).fulfilled_at)

    def test_status_depends_only_on_current_flags(self) -> None:
        first = _submit(self.store, {'Beans': 4, 'Milk': 1})
        a, b = (line.id for line in first.lines)
        toggle_fulfilled(self.store, order_id=first.id, line_id=a, actor='Kim')
        toggle_fulfilled(self.store, order_id=first.id, line_id=b, actor='Kim')
        via_history = toggle_fulfilled(self.store, order_id=first.id, line_id=a, actor='Kim')

        other = InMemoryStore()
        second = _submit(other, {'Beans': 4, 'Milk': 1})
        direct = toggle_fulfilled(other, order_id=second.id, line_id=second.lines[1].id, actor='Kim')

        self.assertEqual(via_history.status, direct.status)
        self.assertEqual(via_history.status, OrderStatus.IN_PROGRESS)

    def test_unfulfilling_from_completed_goes_in_progress(self) -> None:
        order = _submit(self.store, {'Beans': 1, 'Milk': 1, 'Cups': 1})
        for line in order.lines:
            order = toggle_fulfilled(self.store, order_id=order.id, line_id=line.id, actor='Kim')
        self.assertEqual(order.status, OrderStatus.COMPLETED)

        order = toggle_fulfilled(self.store, order_id=order.id, line_id=order.lines[1].id, actor='Kim')
        self.assertEqual(order.status, OrderStatus.IN_PROGRESS)

    def test_manual_override_is_replaced_by_next_toggle(self) -> None:
        order = _submit(self.store, {'Beans': 4, 'Milk': 1})

        order = set_status_manually(self.store, order_id=order.id, status='COMPLETED')
        self.assertEqual(order.status, OrderStatus.COMPLETED)

        order = toggle_fulfilled(self.store, order_id=order.id, line_id=order.lines[0].id, actor='Kim')
        self.assertEqual(order.status, OrderStatus.IN_PROGRESS)

    def test_degenerate_order_keeps_stored_status(self) -> None:
        order = _submit(self.store, {'Cups': 500}, flags={'Cups': True})
        self.assertFalse(order.lines[0].needs_ordering)
        set_status_manually(self.store, order_id=order.id, status=OrderStatus.IN_PROGRESS)

        order = toggle_fulfilled(self.store, order_id=order.id, line_id=order.lines[0].id, actor='Kim')

        self.assertTrue(order.lines[0].fulfilled)
        self.assertEqual(order.status, OrderStatus.IN_PROGRESS)

    def test_missing_order_or_line(self) -> None:
        order = _submit(self.store, {'Beans': 4})

        with self.assertRaises(NotFoundError):
            toggle_fulfilled(self.store, order_id=999, line_id=1, actor='Kim')
        with self.assertRaises(NotFoundError):
            toggle_fulfilled(self.store, order_id=order.id, line_id=999, actor='Kim')

    def test_fulfilling_requires_an_actor(self) -> None:
        order = _submit(self.store, {'Beans': 4})
        line_id = order.lines[0].id

        for actor in (None, '   '):
            with self.assertRaises(ValidationError):
                toggle_fulfilled(self.store, order_id=order.id, line_id=line_id, actor=actor)
        self.assertFalse(self.store.get_order(order.id).lines[0].fulfilled)

        toggle_fulfilled(self.store, order_id=order.id, line_id=line_id, actor=' Kim ')
        order = toggle_fulfilled(self.store, order_id=order.id, line_id=line_id, actor=None)
        self.assertFalse(order.lines[0].fulfilled)
        self.assertEqual(order.status, OrderStatus.PENDING)

    def test_unknown_manual_status_is_rejected(self) -> None:
        order = _submit(self.store, {'Beans': 4})

        with self.assertRaises(ValidationError):
            set_status_manually(self.store, order_id=order.id, status='SHIPPED')
        self.assertEqual(self.store.get_order(order.id).status, OrderStatus.PENDING)


class ClearAllFulfillmentTests(unittest.TestCase):
    def test_clears_every_line_and_recomputes(self) -> None:
        store = InMemoryStore()
        order = _submit(store, {'Beans': 4, 'Milk': 1})
        for line in order.lines:
            toggle_fulfilled(store, order_id=order.id, line_id=line.id, actor='Kim')

        order = clear_all_fulfillment(store, order_id=order.id)

        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertTrue(all(not line.fulfilled and line.fulfilled_at is None for line in order.lines))


class DisplayAndSummaryTests(unittest.TestCase):
    def test_unfulfilled_first_then_fulfilled_by_time(self) -> None:
        lines = [
            _line(1, fulfilled=True, at=T0 + timedelta(minutes=5)),
            _line(2),
            _line(3, fulfilled=True, at=T0),
            _line(4),
        ]

        self.assertEqual([line.id for line in sort_lines_for_display(lines)], [2, 4, 3, 1])

    def test_summary_reports_quantity_gaps_for_eligible_lines(self) -> None:
        store = InMemoryStore()
        order = _submit(store, {'Beans': 4, 'Milk': 1})
        toggle_fulfilled(store, order_id=order.id, line_id=order.lines[0].id, actor='Kim')

        summary = fulfillment_summary(store.get_order(order.id))

        self.assertEqual(summary.eligible_lines, 2)
        self.assertEqual(summary.fulfilled_lines, 1)
        self.assertEqual(summary.status, OrderStatus.IN_PROGRESS)
        self.assertEqual(sorted(summary.quantity_gaps.values()), [5, 6])


if __name__ == '__main__':
    unittest.main()
