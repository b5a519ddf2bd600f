from typing import Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from elegance.core.security import now_utc
from elegance.db.models import Category, Perfume

logger = structlog.get_logger(__name__)


def get(db: Session, perfume_id: int) -> Optional[Perfume]:
    return db.get(Perfume, perfume_id)


def list_active(db: Session, category: Optional[Category] = None, limit: int = 50, offset: int = 0) -> List[Perfume]:
    stmt = select(Perfume).where(Perfume.is_active.is_(True))
    if category is not None:
        stmt = stmt.where(Perfume.category == category)
    stmt = stmt.order_by(Perfume.id).offset(offset).limit(limit)
    return list(db.execute(stmt).scalars().all())


def create_perfume(db: Session, created_by: Optional[int] = None, **fields) -> Perfume:
    obj = Perfume(created_by=created_by, **fields)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj


def restock(db: Session, perfume_id: int, quantity: int) -> Optional[Perfume]:
    stmt = (
        update(Perfume)
        .where(Perfume.id == perfume_id)
        .values(stock=Perfume.stock + quantity, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount == 0:
        db.rollback()
        return None
    db.commit()
    obj = db.get(Perfume, perfume_id, populate_existing=True)
    return obj


def deactivate(db: Session, perfume_id: int) -> Optional[Perfume]:
    """Soft delete: hide the perfume from the catalog. Order snapshots keep their lines."""
    stmt = (
        update(Perfume)
        .where(Perfume.id == perfume_id, Perfume.is_active.is_(True))
        .values(is_active=False, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount == 0:
        db.rollback()
        return None
    db.commit()
    logger.info("perfume_deactivated", perfume_id=perfume_id)
    return db.get(Perfume, perfume_id, populate_existing=True)


def decrement_stock_batch(db: Session, lines: Iterable[Tuple[int, int]]) -> None:
    """Take ``quantity`` units off each perfume, one atomic UPDATE per line.

    A line asking for more than what is left clamps the counter at zero so the
    stock never goes negative; the shortfall is logged as an oversell. Does not
    commit.
    """
    for perfume_id, quantity in lines:
        if quantity <= 0:
            continue
        res = db.execute(
            update(Perfume)
            .where(Perfume.id == perfume_id, Perfume.stock >= quantity)
            .values(stock=Perfume.stock - quantity, updated_at=now_utc())
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 1:
            continue
        clamped = db.execute(
            update(Perfume)
            .where(Perfume.id == perfume_id)
            .values(stock=0, updated_at=now_utc())
            .execution_options(synchronize_session=False)
        )
        if clamped.rowcount == 0:
            logger.warning("stock_decrement_unknown_perfume", perfume_id=perfume_id, quantity=quantity)
        else:
            logger.warning("stock_oversold", perfume_id=perfume_id, quantity=quantity)
