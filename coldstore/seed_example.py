from sqlalchemy import select

from coldstore.db import SessionLocal, engine
from coldstore.models import Base, ConsignmentCategory, User, UserRole
from coldstore.security.passwords import hash_password
from coldstore.services.consignment_service import create_consignment
from coldstore.services.ledger_service import list_allocations, record_placement

DEMO_USERS = [
    ('admin', 'Admin', UserRole.ADMIN, 'adminpass'),
    ('employee1', 'Front Desk', UserRole.EMPLOYEE, 'employeepass'),
    ('guard1', 'Gate Guard', UserRole.GUARD, 'guardpass'),
]


def seed() -> None:
    Base.metadata.create_all(engine)

    with SessionLocal() as db:
        admin = None
        for username, full_name, role, password in DEMO_USERS:
            user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
            if not user:
                user = User(
                    username=username,
                    full_name=full_name,
                    password_hash=hash_password(password),
                    role=role,
                    active=True,
                )
                db.add(user)
                db.flush()
            if role == UserRole.ADMIN:
                admin = user

        if not list_allocations(db):
            consignment = create_consignment(
                db,
                category=ConsignmentCategory.SEED,
                expected_quantity=500,
                customer_id=None,
                remark='Chipsona 1',
                actor_user_id=admin.id,
            )
            record_placement(
                db,
                consignment_code=consignment.code,
                room_no='1',
                floor='0',
                slots=['10', '11', '12'],
                quantity=500,
                breakdown=[200, 200, 100],
                remark='demo placement',
                actor_user_id=admin.id,
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
