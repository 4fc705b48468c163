from __future__ import annotations

import unittest
from datetime import timedelta

from coldstore.models import GatePassStatus
from coldstore.services import expiry_service, gate_pass_service, pickup_service
from tests.support import T0, approved_gate_pass, make_session_factory, stocked_consignment


class ExpirySweepTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.consignment = stocked_consignment(self.db, quantity=500)

    def tearDown(self) -> None:
        self.db.close()

    def _pending(self, quantity: int = 10, now=T0):
        return gate_pass_service.create_gate_pass(
            self.db,
            consignment_code=self.consignment.code,
            requested_quantity=quantity,
            actor_user_id=1,
            payment_verified=True,
            now=now,
        )

    def test_deadline_itself_is_not_expired(self) -> None:
        self._pending()
        self.assertEqual(expiry_service.sweep(self.db, T0 + timedelta(hours=30)), 0)

    def test_sweep_is_idempotent(self) -> None:
        first = self._pending()
        second = self._pending(now=T0 + timedelta(hours=10))
        approved = approved_gate_pass(self.db, self.consignment.code, 50)

        later = T0 + timedelta(hours=31)
        self.assertEqual(expiry_service.sweep(self.db, later), 2)
        self.assertEqual(expiry_service.sweep(self.db, later), 0)

        self.assertEqual(first.status, GatePassStatus.EXPIRED)
        self.assertEqual(second.status, GatePassStatus.PENDING)
        self.assertEqual(approved.status, GatePassStatus.EXPIRED)

    def test_terminal_and_partial_passes_are_left_alone(self) -> None:
        rejected = self._pending()
        gate_pass_service.reject_gate_pass(self.db, gate_pass_id=rejected.id, reason='duplicate', actor_user_id=1, now=T0)
        partial = approved_gate_pass(self.db, self.consignment.code, 100)
        pickup_service.record_pickup(
            self.db,
            gate_pass_id=partial.id,
            quantity=40,
            room_no='1',
            floor='0',
            slot=None,
            actor_user_id=1,
            now=T0 + timedelta(hours=1),
        )

        self.assertEqual(expiry_service.sweep(self.db, T0 + timedelta(days=3)), 0)
        self.assertEqual(rejected.status, GatePassStatus.REJECTED)
        self.assertEqual(partial.status, GatePassStatus.PARTIALLY_COMPLETED)

    def test_expired_approval_keeps_picked_up_quantity_as_final(self) -> None:
        gate_pass = approved_gate_pass(self.db, self.consignment.code, 100)
        expiry_service.sweep(self.db, T0 + timedelta(hours=16))
        self.assertEqual(gate_pass.status, GatePassStatus.EXPIRED)
        self.assertEqual(gate_pass.final_approved_quantity, 0)
        self.assertEqual(gate_pass.approved_quantity, 100)


if __name__ == '__main__':
    unittest.main()
