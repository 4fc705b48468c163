from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from coldstore.models import ConsignmentCategory
from coldstore.services import audit_service
from coldstore.services.consignment_service import create_consignment, get_consignment_by_code
from tests.support import make_session_factory


class AuditServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_log_action_appends_row(self) -> None:
        audit_service.log_action(
            self.db,
            actor_user_id=4,
            action='APPROVE',
            target_type='gate_pass',
            target_id=11,
            description='Gate pass 11 approved',
            ip='10.0.0.8',
            metadata={'gate_no': 'G1'},
        )
        rows = audit_service.list_actions(self.db, target_type='gate_pass', target_id=11)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].meta, {'gate_no': 'G1'})
        self.assertEqual(rows[0].ip, '10.0.0.8')

    @patch('coldstore.services.audit_service.AdminActionLog', side_effect=SQLAlchemyError('audit table missing'))
    def test_failed_audit_write_does_not_undo_caller_work(self, _admin_action_log_mock) -> None:
        with self.assertLogs('coldstore.services.audit_service', level='WARNING') as captured:
            consignment = create_consignment(
                self.db,
                category=ConsignmentCategory.SEED,
                expected_quantity=120,
                customer_id=None,
                remark='',
                actor_user_id=None,
            )
        self.db.commit()

        self.assertEqual(get_consignment_by_code(self.db, consignment.code).expected_quantity, 120)
        self.assertIn('admin action log write failed', captured.output[0])


if __name__ == '__main__':
    unittest.main()
