from __future__ import annotations

import unittest
from datetime import timedelta

from coldstore.errors import (
    ConflictError,
    ExpiredError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from coldstore.models import GatePassStatus
from coldstore.services import gate_pass_service, ledger_service, pickup_service
from coldstore.timeutil import ensure_utc
from tests.support import T0, approved_gate_pass, make_session_factory, stocked_consignment


class PickupServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.consignment = stocked_consignment(self.db, quantity=500)

    def tearDown(self) -> None:
        self.db.close()

    def _pickup(self, gate_pass_id: int, quantity: int, *, room_no='1', floor='0', now=None):
        return pickup_service.record_pickup(
            self.db,
            gate_pass_id=gate_pass_id,
            quantity=quantity,
            room_no=room_no,
            floor=floor,
            slot='10',
            actor_user_id=3,
            now=now or T0 + timedelta(hours=1),
        )

    def test_two_pickups_complete_the_pass(self) -> None:
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 300)

        self._pickup(gate_pass.id, 150)
        self.assertEqual(gate_pass.status, GatePassStatus.PARTIALLY_COMPLETED)
        self.assertEqual(gate_pass.total_picked_up, 150)
        self.assertIsNone(gate_pass.completed_at)

        finished_at = T0 + timedelta(hours=2)
        self._pickup(gate_pass.id, 150, now=finished_at)
        self.assertEqual(gate_pass.status, GatePassStatus.COMPLETED)
        self.assertEqual(gate_pass.total_picked_up, 300)
        self.assertEqual(ensure_utc(gate_pass.completed_at), finished_at)

        self.assertEqual(ledger_service.total_quantity(self.db, self.consignment.code), 200)
        history = gate_pass_service.list_pickups(self.db, gate_pass.id)
        self.assertEqual([pickup.quantity for pickup in history], [150, 150])
        self.assertEqual(history[0].slot, '10')

    def test_pickup_larger_than_row_is_refused_without_side_effects(self) -> None:
        ledger_service.record_placement(
            self.db,
            consignment_code=self.consignment.code,
            room_no='2',
            floor='1',
            slots=['40'],
            quantity=200,
            actor_user_id=None,
        )
        ledger_service.decrement(
            self.db, consignment_code=self.consignment.code, room_no='1', floor='0', amount=200
        )
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 350)

        with self.assertRaises(ConflictError) as ctx:
            self._pickup(gate_pass.id, 350)

        self.assertIsInstance(ctx.exception, InsufficientStockError)
        rows = ledger_service.list_allocations(self.db, consignment_code=self.consignment.code, room_no='1')
        self.assertEqual(rows[0].quantity, 300)
        self.assertEqual(gate_pass.status, GatePassStatus.APPROVED)
        self.assertEqual(gate_pass.total_picked_up, 0)
        self.assertEqual(gate_pass_service.list_pickups(self.db, gate_pass.id), [])

    def test_ledger_and_pickups_are_conserved(self) -> None:
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 400)
        for quantity in (100, 50, 120):
            self._pickup(gate_pass.id, quantity)

        picked = pickup_service.picked_up_total(self.db, gate_pass.id)
        self.assertEqual(picked, 270)
        self.assertEqual(ledger_service.total_quantity(self.db, self.consignment.code) + picked, 500)

    def test_total_picked_up_never_decreases(self) -> None:
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 300)
        seen = [gate_pass.total_picked_up]
        for quantity in (10, 1, 200):
            self._pickup(gate_pass.id, quantity)
            seen.append(gate_pass.total_picked_up)
        self.assertEqual(seen, sorted(seen))

    def test_requested_quantity_bounds_pickups_after_partial_approval(self) -> None:
        gate_pass = gate_pass_service.create_gate_pass(
            self.db,
            consignment_code=self.consignment.code,
            requested_quantity=300,
            actor_user_id=1,
            payment_verified=True,
            now=T0,
        )
        gate_pass_service.approve_gate_pass(
            self.db, gate_pass_id=gate_pass.id, approved_quantity=100, gate_no='G3', approver_user_id=1, now=T0
        )

        self._pickup(gate_pass.id, 100)
        self.assertEqual(gate_pass.status, GatePassStatus.PARTIALLY_COMPLETED)
        self._pickup(gate_pass.id, 200)
        self.assertEqual(gate_pass.status, GatePassStatus.COMPLETED)
        self.assertEqual(gate_pass.approved_quantity, 100)
        with self.assertRaises(InvalidTransitionError):
            self._pickup(gate_pass.id, 1)

    def test_pickup_beyond_remaining_quantity(self) -> None:
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 300)
        self._pickup(gate_pass.id, 200)
        with self.assertRaises(ConflictError):
            self._pickup(gate_pass.id, 101)
        self.assertEqual(gate_pass.total_picked_up, 200)

    def test_pickup_against_pending_or_completed_pass(self) -> None:
        pending = gate_pass_service.create_gate_pass(
            self.db,
            consignment_code=self.consignment.code,
            requested_quantity=10,
            actor_user_id=1,
            payment_verified=True,
            now=T0,
        )
        with self.assertRaises(InvalidTransitionError):
            self._pickup(pending.id, 5)

        done = approved_gate_pass(self.db, self.consignment.code, 20)
        self._pickup(done.id, 20)
        with self.assertRaises(InvalidTransitionError):
            self._pickup(done.id, 1)

    def test_approved_pass_past_pickup_window_is_swept_first(self) -> None:
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 300)
        with self.assertRaises(InvalidTransitionError):
            self._pickup(gate_pass.id, 10, now=T0 + timedelta(hours=15, seconds=1))

        self.assertEqual(gate_pass.status, GatePassStatus.EXPIRED)
        self.assertEqual(gate_pass.final_approved_quantity, 0)
        self.assertEqual(ledger_service.total_quantity(self.db, self.consignment.code), 500)

    def test_partially_completed_pass_past_pickup_window(self) -> None:
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 300)
        self._pickup(gate_pass.id, 100)
        with self.assertRaises(ExpiredError):
            self._pickup(gate_pass.id, 100, now=T0 + timedelta(hours=16))
        self.assertEqual(gate_pass.total_picked_up, 100)

    def test_location_is_resolved_when_omitted(self) -> None:
        ledger_service.record_placement(
            self.db,
            consignment_code=self.consignment.code,
            room_no='3',
            floor='2',
            slots=['55'],
            quantity=100,
            actor_user_id=None,
        )
        ledger_service.decrement(
            self.db, consignment_code=self.consignment.code, room_no='1', floor='0', amount=450
        )
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 80)

        pickup = self._pickup(gate_pass.id, 80, room_no=None, floor=None)

        self.assertEqual((pickup.room_no, pickup.floor), ('3', '2'))
        self.assertEqual(
            ledger_service.list_allocations(self.db, consignment_code=self.consignment.code, room_no='3')[0].quantity,
            20,
        )

    def test_location_resolution_without_allocations(self) -> None:
        with self.assertRaises(NotFoundError):
            pickup_service._resolve_location(self.db, consignment_code='0077/5', quantity=1)

    def test_non_positive_quantity(self) -> None:
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 300)
        with self.assertRaises(ValidationError):
            self._pickup(gate_pass.id, 0)

    def test_missing_gate_pass(self) -> None:
        with self.assertRaises(NotFoundError):
            self._pickup(999, 1)


if __name__ == '__main__':
    unittest.main()
