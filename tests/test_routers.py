from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from coldstore.db import get_db
from coldstore.main import app
from coldstore.models import User, UserRole
from coldstore.security.passwords import hash_password
from tests.support import make_session_factory

PASSWORD = 'correct-horse'


class RouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()

        def override_get_db():
            with self.session_factory() as db:
                yield db

        self._previous_factory = app.state.session_factory
        app.state.session_factory = self.session_factory
        app.dependency_overrides[get_db] = override_get_db

        with self.session_factory() as db:
            db.add_all(
                [
                    User(username='admin', password_hash=hash_password(PASSWORD), role=UserRole.ADMIN),
                    User(username='guard1', password_hash=hash_password(PASSWORD), role=UserRole.GUARD),
                    User(
                        username='farmer7',
                        password_hash=hash_password(PASSWORD),
                        role=UserRole.CUSTOMER,
                        customer_id=7,
                    ),
                ]
            )
            db.commit()

        self.client = TestClient(app)

    def tearDown(self) -> None:
        self.client.close()
        app.dependency_overrides.clear()
        app.state.session_factory = self._previous_factory

    def _login(self, username: str, password: str = PASSWORD):
        self.client.cookies.clear()
        return self.client.post('/api/auth/login', json={'username': username, 'password': password})

    def _stock(self, quantity: int = 500, customer_id: int | None = None) -> str:
        self._login('admin')
        created = self.client.post(
            '/api/consignments',
            json={'category': 'seed', 'expected_quantity': quantity, 'customer_id': customer_id},
        )
        self.assertEqual(created.status_code, 201, created.text)
        code = created.json()['code']
        placed = self.client.post(
            '/api/allocations',
            json={
                'consignment_code': code,
                'room_no': '1',
                'floor': '0',
                'slots': ['10', '11', '12'],
                'quantity': quantity,
                'breakdown': '200, 200, 100' if quantity == 500 else None,
            },
        )
        self.assertEqual(placed.status_code, 201, placed.text)
        return code

    def test_requests_without_session_are_rejected(self) -> None:
        self.assertEqual(self.client.get('/health').status_code, 200)
        self.assertEqual(self.client.get('/api/gate-passes').status_code, 401)

    def test_login_rejects_wrong_password(self) -> None:
        response = self._login('admin', 'wrong-password')
        self.assertEqual(response.status_code, 401)

    def test_login_me_and_logout(self) -> None:
        self.assertEqual(self._login('guard1').status_code, 200)
        me = self.client.get('/api/auth/me')
        self.assertEqual(me.json()['role'], 'guard')

        self.assertEqual(self.client.post('/api/auth/logout').status_code, 200)
        self.assertEqual(self.client.get('/api/auth/me').status_code, 401)

    def test_gate_pass_lifecycle(self) -> None:
        code = self._stock()
        detail = self.client.get(f'/api/consignments/{code}')
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(detail.json()['total_quantity'], 500)
        self.assertEqual(detail.json()['allocations'][0]['breakdown'], [200, 200, 100])

        created = self.client.post(
            '/api/gate-passes',
            json={'consignment_code': code, 'requested_quantity': 300, 'payment_verified': True},
        )
        self.assertEqual(created.status_code, 201, created.text)
        gate_pass_id = created.json()['id']
        self.assertEqual(created.json()['status'], 'pending')

        approved = self.client.post(
            f'/api/gate-passes/{gate_pass_id}/approve',
            json={'approved_quantity': 300, 'gate_no': 'G1'},
        )
        self.assertEqual(approved.json()['status'], 'approved')

        self._login('guard1')
        for _ in range(2):
            pickup = self.client.post(
                f'/api/gate-passes/{gate_pass_id}/pickups',
                json={'quantity': 150, 'room_no': '1', 'floor': '0', 'slot': '10'},
            )
            self.assertEqual(pickup.status_code, 201, pickup.text)

        final = self.client.get(f'/api/gate-passes/{gate_pass_id}').json()
        self.assertEqual(final['status'], 'completed')
        self.assertEqual(final['total_picked_up'], 300)
        self.assertIsNotNone(final['completed_at'])
        self.assertEqual(len(self.client.get(f'/api/gate-passes/{gate_pass_id}/pickups').json()), 2)

    def test_service_errors_map_to_http_statuses(self) -> None:
        code = self._stock()
        self.assertEqual(self.client.get('/api/consignments/0999/1').status_code, 404)

        unpaid = self.client.post(
            '/api/gate-passes',
            json={'consignment_code': code, 'requested_quantity': 10, 'payment_verified': False},
        )
        self.assertEqual(unpaid.status_code, 400)

        too_many = self.client.post(
            '/api/gate-passes',
            json={'consignment_code': code, 'requested_quantity': 501, 'payment_verified': True},
        )
        self.assertEqual(too_many.status_code, 409)

        pending_id = self.client.post(
            '/api/gate-passes',
            json={'consignment_code': code, 'requested_quantity': 10, 'payment_verified': True},
        ).json()['id']
        pickup = self.client.post(f'/api/gate-passes/{pending_id}/pickups', json={'quantity': 5})
        self.assertEqual(pickup.status_code, 409)

    def test_guard_cannot_approve(self) -> None:
        code = self._stock()
        gate_pass_id = self.client.post(
            '/api/gate-passes',
            json={'consignment_code': code, 'requested_quantity': 10, 'payment_verified': True},
        ).json()['id']

        self._login('guard1')
        response = self.client.post(
            f'/api/gate-passes/{gate_pass_id}/approve', json={'approved_quantity': 10, 'gate_no': 'G1'}
        )
        self.assertEqual(response.status_code, 403)

    def test_customer_requests_are_scoped(self) -> None:
        own_code = self._stock(quantity=100, customer_id=7)
        other_code = self._stock(quantity=80, customer_id=8)

        self._login('farmer7')
        created = self.client.post('/api/gate-passes', json={'consignment_code': own_code, 'requested_quantity': 40})
        self.assertEqual(created.status_code, 201, created.text)
        self.assertEqual(created.json()['request_source'], 'customer_portal')
        self.assertEqual(created.json()['customer_id'], 7)

        other = self.client.post('/api/gate-passes', json={'consignment_code': other_code, 'requested_quantity': 10})
        self.assertEqual(other.status_code, 403)

        listed = self.client.get('/api/gate-passes').json()
        self.assertEqual([row['consignment_code'] for row in listed], [own_code])

        approve = self.client.post(
            f"/api/gate-passes/{created.json()['id']}/approve",
            json={'approved_quantity': 40, 'gate_no': 'G1'},
        )
        self.assertEqual(approve.status_code, 403)

    def test_occupancy_and_audit_log(self) -> None:
        self._stock()
        gatars = self.client.get('/api/occupancy/1/0').json()
        self.assertEqual([(row['gatar'], row['total_quantity']) for row in gatars], [('10', 200), ('11', 200), ('12', 100)])

        details = self.client.get('/api/occupancy/gatars/11').json()
        self.assertEqual(details['items'][0]['distributed_quantity'], 200)

        rooms = self.client.get('/api/occupancy/rooms').json()
        self.assertEqual(rooms, [{'room_no': '1', 'floor': '0', 'total_quantity': 500, 'allocation_count': 1, 'occupied_gatars': 3}])

        actions = self.client.get('/api/audit-log').json()
        self.assertIn('LOGIN', {row['action'] for row in actions})


if __name__ == '__main__':
    unittest.main()
