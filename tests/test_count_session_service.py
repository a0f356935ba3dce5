from __future__ import annotations

import unittest
from dataclasses import replace
from datetime import datetime, timezone

from fakes import InMemoryStore

from app.errors import EmptySubmission, NotFoundError, TransientStoreError, ValidationError
from app.models import OrderStatus
from app.services.count_session_service import (
    CountEntry,
    CountInput,
    CountingSession,
    build_order,
    needs_ordering,
    preview_rows,
    session_from_inputs,
    submit_order,
)
from app.services.records import CatalogItem

BEANS = CatalogItem(id=1, name='Beans', unit='kg', minimum_threshold=10, checkbox_only=False, supplier_name='Roastery')
NAPKINS = CatalogItem(id=2, name='Napkins', unit='pack', minimum_threshold=0, checkbox_only=True)
MILK = CatalogItem(id=3, name='Milk', unit='L', minimum_threshold=6, checkbox_only=False, category_names=('Dairy', 'Bar'))


class NeedsOrderingTests(unittest.TestCase):
    def test_quantity_item_orders_only_below_threshold(self) -> None:
        self.assertTrue(needs_ordering(BEANS, CountEntry(item_id=1, counted_quantity=7)))
        self.assertFalse(needs_ordering(BEANS, CountEntry(item_id=1, counted_quantity=10)))
        self.assertFalse(needs_ordering(BEANS, CountEntry(item_id=1, counted_quantity=11)))

    def test_presence_only_item_follows_flag_regardless_of_quantity(self) -> None:
        self.assertFalse(needs_ordering(NAPKINS, CountEntry(item_id=2, counted_quantity=0, flagged_for_order=False)))
        self.assertTrue(needs_ordering(NAPKINS, CountEntry(item_id=2, counted_quantity=50, flagged_for_order=True)))


class CountingSessionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = CountingSession(1, [BEANS, NAPKINS, MILK])

    def test_set_quantity_recomputes_flag_for_quantity_items(self) -> None:
        self.assertTrue(self.session.set_quantity(1, 4).flagged_for_order)
        self.assertFalse(self.session.set_quantity(1, 12).flagged_for_order)

    def test_negative_quantity_is_rejected_and_prior_value_kept(self) -> None:
        self.session.set_quantity(1, 4)

        with self.assertRaises(ValidationError):
            self.session.set_quantity(1, -1)

        self.assertEqual(self.session.entry(1), CountEntry(item_id=1, counted_quantity=4, flagged_for_order=True))

    def test_non_integer_quantity_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.session.set_quantity(1, 2.5)
        with self.assertRaises(ValidationError):
            self.session.set_quantity(1, True)
        self.assertIsNone(self.session.entry(1))

    def test_presence_only_quantity_does_not_touch_flag(self) -> None:
        self.session.set_flag(2, True)
        self.session.set_quantity(2, 40)

        self.assertTrue(self.session.entry(2).flagged_for_order)

    def test_operator_can_override_flag(self) -> None:
        self.session.set_quantity(1, 12)
        self.session.set_flag(1, True)

        self.assertTrue(self.session.entry(1).flagged_for_order)

    def test_hidden_and_deleted_items_are_not_countable(self) -> None:
        hidden = CatalogItem(id=8, name='Seasonal Syrup', unit='btl', minimum_threshold=2, checkbox_only=False, hidden=True)
        gone = CatalogItem(
            id=9,
            name='Old Cups',
            unit='sleeve',
            minimum_threshold=2,
            checkbox_only=False,
            deleted_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        session = CountingSession(1, [BEANS, hidden, gone])

        for item_id in (8, 9):
            with self.assertRaises(NotFoundError):
                session.set_quantity(item_id, 1)
        self.assertEqual([item.id for item in session.items], [1])

    def test_entries_is_a_copy(self) -> None:
        self.session.set_quantity(1, 3)
        entries = self.session.entries()
        entries.clear()

        self.assertEqual(len(self.session.entries()), 1)


class SessionFromInputsTests(unittest.TestCase):
    def test_builds_session_and_preview(self) -> None:
        session = session_from_inputs(
            [BEANS, NAPKINS, MILK],
            location_id=1,
            rows=[
                CountInput(product_id=3, counted_quantity=8),
                CountInput(product_id=1, counted_quantity=4),
                CountInput(product_id=2, flagged_for_order=True),
            ],
        )

        rows = preview_rows(session)

        self.assertEqual([row['name'] for row in rows], ['Beans', 'Napkins', 'Milk'])
        self.assertEqual([row['needs_ordering'] for row in rows], [True, True, False])

    def test_row_without_quantity_or_flag_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            session_from_inputs([BEANS], location_id=1, rows=[CountInput(product_id=1)])

    def test_preview_included_matches_submitted_lines(self) -> None:
        session = session_from_inputs(
            [BEANS, NAPKINS, MILK],
            location_id=1,
            rows=[
                CountInput(product_id=1, counted_quantity=20, flagged_for_order=True),
                CountInput(product_id=2, flagged_for_order=False),
                CountInput(product_id=3, counted_quantity=2),
            ],
        )

        rows = preview_rows(session)
        draft = build_order(location_id=1, submitted_by='Sam', note=None, session=session)

        included = [row['name'] for row in rows if row['included']]
        self.assertEqual(included, [line.item_name for line in draft.lines])
        self.assertEqual(included, ['Beans', 'Milk'])
        beans_row = rows[0]
        self.assertTrue(beans_row['included'])
        self.assertFalse(beans_row['needs_ordering'])

    def test_duplicate_rows_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            session_from_inputs(
                [BEANS],
                location_id=1,
                rows=[CountInput(product_id=1, counted_quantity=4), CountInput(product_id=1, counted_quantity=5)],
            )

    def test_unknown_product_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            session_from_inputs([BEANS], location_id=1, rows=[CountInput(product_id=99, counted_quantity=1)])


class BuildOrderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = CountingSession(1, [BEANS, NAPKINS, MILK])

    def test_only_flagged_entries_become_lines_with_snapshots(self) -> None:
        self.session.set_quantity(1, 4)
        self.session.set_quantity(3, 2)
        self.session.set_quantity(2, 0)

        draft = build_order(location_id=1, submitted_by='  Sam ', note='  ', session=self.session)

        self.assertEqual(draft.submitted_by, 'Sam')
        self.assertIsNone(draft.note)
        self.assertEqual([line.item_name for line in draft.lines], ['Beans', 'Milk'])
        beans, milk = draft.lines
        self.assertEqual(beans.minimum_threshold, 10)
        self.assertEqual(beans.counted_quantity, 4)
        self.assertEqual(beans.supplier_name, 'Roastery')
        self.assertTrue(beans.needs_ordering)
        self.assertEqual(milk.category_names, ('Dairy', 'Bar'))

    def test_all_unflagged_is_empty_submission(self) -> None:
        self.session.set_quantity(1, 20)
        self.session.set_flag(2, False)

        with self.assertRaises(EmptySubmission):
            build_order(location_id=1, submitted_by='Sam', note=None, session=self.session)

    def test_missing_location_or_submitter_is_rejected(self) -> None:
        self.session.set_quantity(1, 4)

        with self.assertRaises(ValidationError):
            build_order(location_id=None, submitted_by='Sam', note=None, session=self.session)
        with self.assertRaises(ValidationError):
            build_order(location_id=2, submitted_by='Sam', note=None, session=self.session)
        with self.assertRaises(ValidationError):
            build_order(location_id=1, submitted_by='   ', note=None, session=self.session)

    def test_napkins_only_included_when_checked(self) -> None:
        self.session.set_quantity(1, 4)
        draft = build_order(location_id=1, submitted_by='Sam', note=None, session=self.session)
        self.assertNotIn('Napkins', [line.item_name for line in draft.lines])

        self.session.set_flag(2, True)
        draft = build_order(location_id=1, submitted_by='Sam', note=None, session=self.session)
        napkins = [line for line in draft.lines if line.item_name == 'Napkins']
        self.assertEqual(len(napkins), 1)
        self.assertTrue(napkins[0].needs_ordering)

    def test_draft_is_unaffected_by_later_catalog_edits(self) -> None:
        store = InMemoryStore()
        location_id = store.add_location()
        beans = store.add_product('Beans', unit='kg', minimum_threshold=10)
        session = CountingSession(location_id, store.list_catalog())
        session.set_quantity(beans.id, 7)
        order = submit_order(store, build_order(location_id=location_id, submitted_by='Sam', note=None, session=session))

        store.products[beans.id] = replace(store.products[beans.id], minimum_threshold=3)

        line = store.get_order(order.id).lines[0]
        self.assertEqual(line.minimum_threshold_snapshot, 10)
        self.assertTrue(line.needs_ordering)


class SubmitOrderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.location_id = self.store.add_location()
        self.beans = self.store.add_product('Beans', unit='kg', minimum_threshold=10)

    def _draft(self, location_id: int):
        session = CountingSession(location_id, self.store.list_catalog())
        session.set_quantity(self.beans.id, 4)
        return build_order(location_id=location_id, submitted_by='Sam', note='Rush', session=session)

    def test_creates_pending_order(self) -> None:
        order = submit_order(self.store, self._draft(self.location_id))

        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.note, 'Rush')
        self.assertEqual(len(order.lines), 1)
        self.assertFalse(order.lines[0].fulfilled)

    def test_unknown_location_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            submit_order(self.store, self._draft(404))
        self.assertEqual(self.store.orders, {})

    def test_store_failure_propagates_without_order(self) -> None:
        self.store.fail_create_order = True

        with self.assertRaises(TransientStoreError):
            submit_order(self.store, self._draft(self.location_id))
        self.assertEqual(self.store.orders, {})


if __name__ == '__main__':
    unittest.main()
