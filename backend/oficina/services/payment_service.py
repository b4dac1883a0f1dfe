"""
Order payments

WHY: Finalizing an order makes it collectible; settling it is what turns
the order total into revenue on the open cash session.

LIFECYCLE:
- GENERATED: created by finalize_order (at most one per order)
- PAID: settled while a cash session is open; revenue accrued on that session
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Payment, ServiceOrder
from ..models.enums import OrderStatus, PaymentMethod, PaymentStatus
from oficina.time_utils import utcnow
from oficina.validation import Conflict, InvalidTransition, parse_enum
from . import events
from .cash_service import get_open_session, record_revenue
from .concurrency import run_with_retry
from .tenant_service import get_actor, get_scoped_order


def ensure_generated_payment(order: ServiceOrder) -> Payment:
    """
    Create the order's GENERATED payment, or refresh the existing unpaid one.

    Idempotent: finalizing twice (e.g. after reopening) never creates a
    second payment. Does not commit.
    """
    open_session = get_open_session(order.establishment_id)
    session_id = open_session.id if open_session else None

    payment = db.session.query(Payment).filter_by(order_id=order.id).first()
    if payment:
        if payment.status == PaymentStatus.GENERATED.value:
            payment.amount_cents = order.total_cents
            payment.cash_session_id = session_id
        return payment

    payment = Payment(
        order_id=order.id,
        client_id=order.client_id,
        cash_session_id=session_id,
        amount_cents=order.total_cents,
        status=PaymentStatus.GENERATED.value,
        created_at=utcnow(),
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def settle_payment(order_id: int, actor_id: int, method) -> Payment:
    """
    Collect a finalized order's total into the open cash session.

    Raises:
        InvalidTransition: order is not Finalized
        Conflict: no open cash session, or the order is already paid
    """
    method = parse_enum(PaymentMethod, method, "method")

    def _op():
        actor = get_actor(actor_id)
        order = get_scoped_order(order_id, actor.establishment_id, lock=True)
        if order.status != OrderStatus.FINALIZED.value:
            raise InvalidTransition(
                f"Only finalized orders can be paid (current status '{order.status}')"
            )

        session = get_open_session(order.establishment_id, lock=True)
        if not session:
            raise Conflict("No open cash session; open the till before receiving payments")

        payment = ensure_generated_payment(order)
        if payment.status == PaymentStatus.PAID.value:
            raise Conflict("Order is already paid", details={"payment_id": payment.id})

        payment.amount_cents = order.total_cents
        payment.status = PaymentStatus.PAID.value
        payment.method = method.value
        payment.cash_session_id = session.id
        payment.paid_at = utcnow()
        payment.settled_by_user_id = actor.id
        record_revenue(session, payment.amount_cents)

        events.publish(
            events.PAYMENT_RECORDED,
            establishment_id=order.establishment_id,
            entity_type="payment",
            entity_id=payment.id,
            actor_user_id=actor.id,
            payload={
                "order_id": order.id,
                "code": order.code,
                "amount_cents": payment.amount_cents,
                "method": payment.method,
                "cash_session_id": session.id,
            },
        )
        db.session.commit()

        current_app.logger.info(
            "Payment %s for order %s settled via %s: %s cents into cash session %s",
            payment.id, order.code, payment.method, payment.amount_cents, session.id,
        )
        return payment

    return run_with_retry(_op)


def list_payments(order_id: int, establishment_id: int) -> list[Payment]:
    order = get_scoped_order(order_id, establishment_id)
    return db.session.query(Payment).filter_by(order_id=order.id).order_by(Payment.id.asc()).all()
