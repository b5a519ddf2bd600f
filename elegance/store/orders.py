"""Order persistence.

Status changes go through single conditional UPDATE statements so that two
requests racing on the same payment intent can never both observe the same
transition. Callers own the transaction: nothing here commits.
"""
import secrets
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from elegance.core.security import now_utc
from elegance.db.models import Order, OrderItem, OrderStatus

ORDER_NUMBER_ATTEMPTS = 5


def new_order_number(prefix: str) -> str:
    return f"{prefix}-{100000 + secrets.randbelow(900000)}"


def create_pending(db: Session, order: Order, items: Iterable[OrderItem], prefix: str) -> Order:
    """Insert ``order`` as pending with its line items and a fresh order number.

    Commits on success. An order-number collision rolls back and retries with a
    new code; any other integrity error propagates.
    """
    items = list(items)
    attempts = 0
    while True:
        order.order_number = new_order_number(prefix)
        order.status = OrderStatus.PENDING
        order.items = items
        db.add(order)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            attempts += 1
            if attempts >= ORDER_NUMBER_ATTEMPTS or not _order_number_taken(db, order.order_number):
                raise
            continue
        db.refresh(order)
        return order


def _order_number_taken(db: Session, number: str) -> bool:
    return db.execute(select(Order.id).where(Order.order_number == number)).first() is not None


def _load(db: Session, stmt) -> Optional[Order]:
    return db.execute(stmt.options(selectinload(Order.items)).execution_options(populate_existing=True)).scalars().first()


def find_by_reference(db: Session, ref: str) -> Optional[Order]:
    return _load(db, select(Order).where(Order.payment_intent_id == ref))


def find_by_reference_and_user(db: Session, ref: str, user_id: int) -> Optional[Order]:
    return _load(db, select(Order).where(Order.payment_intent_id == ref, Order.user_id == user_id))


def find_by_id(db: Session, order_id: int, user_id: int) -> Optional[Order]:
    return _load(db, select(Order).where(Order.id == order_id, Order.user_id == user_id))


def list_by_user(db: Session, user_id: int) -> List[Order]:
    stmt = (
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .options(selectinload(Order.items))
    )
    return list(db.execute(stmt).scalars().all())


def transition_if_status(
    db: Session,
    ref: str,
    from_statuses: Iterable[OrderStatus],
    to_status: OrderStatus,
    user_id: Optional[int] = None,
) -> Optional[Order]:
    """Compare-and-swap the status of the order paying with ``ref``.

    Returns the updated order when exactly this call applied the transition,
    otherwise None. The change is flushed but not committed.
    """
    stmt = (
        update(Order)
        .where(Order.payment_intent_id == ref, Order.status.in_(list(from_statuses)))
        .values(status=to_status, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    result = db.execute(stmt)
    if result.rowcount != 1:
        return None
    return find_by_reference(db, ref)


def cancel_if_pending(db: Session, order_id: int, user_id: int) -> Optional[Order]:
    stmt = (
        update(Order)
        .where(Order.id == order_id, Order.user_id == user_id, Order.status == OrderStatus.PENDING)
        .values(status=OrderStatus.CANCELLED, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount != 1:
        return None
    return find_by_id(db, order_id, user_id)


def set_status_unconditional(db: Session, ref: str, status: OrderStatus) -> Optional[Order]:
    stmt = (
        update(Order)
        .where(Order.payment_intent_id == ref)
        .values(status=status, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount == 0:
        return None
    return find_by_reference(db, ref)
