from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from coldstore.models import Base, ConsignmentCategory
from coldstore.services import gate_pass_service
from coldstore.services.consignment_service import create_consignment
from coldstore.services.ledger_service import record_placement

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def make_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; take it over.
    @event.listens_for(engine, 'connect')
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _emit_begin(conn):
        conn.exec_driver_sql('BEGIN')

    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine=None) -> sessionmaker:
    return sessionmaker(bind=engine or make_engine(), autoflush=False, expire_on_commit=False)


def stocked_consignment(
    db: Session,
    *,
    quantity: int = 500,
    room_no: str = '1',
    floor: str = '0',
    slots=('10', '11', '12'),
    breakdown=None,
    customer_id: int | None = None,
):
    consignment = create_consignment(
        db,
        category=ConsignmentCategory.SEED,
        expected_quantity=quantity,
        customer_id=customer_id,
        remark='Chipsona 1',
        actor_user_id=None,
    )
    record_placement(
        db,
        consignment_code=consignment.code,
        room_no=room_no,
        floor=floor,
        slots=list(slots),
        quantity=quantity,
        breakdown=breakdown,
        actor_user_id=None,
    )
    return consignment


def approved_gate_pass(db: Session, consignment_code: str, quantity: int, *, now: datetime = T0):
    gate_pass = gate_pass_service.create_gate_pass(
        db,
        consignment_code=consignment_code,
        requested_quantity=quantity,
        actor_user_id=None,
        payment_verified=True,
        now=now,
    )
    gate_pass_service.approve_gate_pass(
        db,
        gate_pass_id=gate_pass.id,
        approved_quantity=quantity,
        gate_no='G1',
        approver_user_id=1,
        now=now,
    )
    return gate_pass
