"""
Checkout and payment reconciliation.

An order is created ``pending`` next to its Stripe PaymentIntent and becomes
``paid`` through whichever signal arrives first: the client calling back after
``stripe.confirmCardPayment`` or Stripe's ``payment_intent.succeeded`` webhook.
Both paths go through the same conditional UPDATE on the order status; only
the request that actually moved the row decrements stock, and it does so in
the same database transaction.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from elegance.core.config import Settings
from elegance.core.errors import (
    EmptyCart,
    InvalidAmount,
    OrderNotCancellable,
    OrderNotFound,
    OrderNotPayable,
    PaymentNotSucceeded,
)
from elegance.db.models import Order, OrderItem, OrderStatus, User
from elegance.kafka.producer import EventPublisher
from elegance.payments.gateway import (
    EVENT_INTENT_FAILED,
    EVENT_INTENT_SUCCEEDED,
    INTENT_SUCCEEDED,
    GatewayEvent,
    IntentStatus,
    PaymentGateway,
)
from elegance.store import catalog, orders

logger = structlog.get_logger(__name__)

STRIPE_DESCRIPTION_MAX = 1000


@dataclass(frozen=True)
class LineItem:
    perfume_id: int
    name: str
    quantity: int
    price: int


@dataclass(frozen=True)
class CheckoutResult:
    client_secret: str
    payment_intent_id: str
    order_id: int
    order_number: str
    amount: int
    currency: str


def describe(items: Sequence[LineItem]) -> str:
    text = ", ".join(f"{it.quantity}x {it.name.strip() or 'Perfume'}" for it in items)
    return text[:STRIPE_DESCRIPTION_MAX]


class OrderReconciler:
    def __init__(self, settings: Settings, gateway: PaymentGateway, publisher: Optional[EventPublisher] = None):
        self.settings = settings
        self.gateway = gateway
        self.publisher = publisher

    # -- checkout -------------------------------------------------------

    def initiate_checkout(
        self,
        db: Session,
        user: User,
        items: Sequence[LineItem],
        shipping: Optional[Dict[str, str]],
        subtotal: Optional[float],
        shipping_cost: Optional[float],
        amount: Optional[float],
    ) -> CheckoutResult:
        if amount is None or not math.isfinite(amount) or round(amount) <= 0:
            raise InvalidAmount()
        if any(v is not None and not math.isfinite(v) for v in (subtotal, shipping_cost)):
            raise InvalidAmount("Subtotal and shipping cost must be finite numbers")
        if not items:
            raise EmptyCart()

        total = int(round(amount))
        cost = int(round(shipping_cost or 0))
        sub = int(round(subtotal)) if subtotal is not None else max(total - cost, 0)

        # Stripe first: if it fails nothing is written locally
        intent = self.gateway.create_intent(
            amount=total,
            description=describe(items),
            metadata={"userId": str(user.id), "userEmail": user.email},
        )

        order = Order(
            user_id=user.id,
            payment_intent_id=intent.id,
            shipping=dict(shipping or {}),
            subtotal=sub,
            shipping_cost=cost,
            total=total,
            currency=self.settings.CURRENCY,
        )
        lines = [
            OrderItem(perfume_id=it.perfume_id, name=it.name, quantity=it.quantity, unit_price=it.price)
            for it in items
        ]
        try:
            order = orders.create_pending(db, order, lines, self.settings.ORDER_NUMBER_PREFIX)
        except SQLAlchemyError:
            logger.exception("pending_order_persist_failed", payment_intent_id=intent.id, user_id=user.id)
            raise

        logger.info(
            "checkout_initiated",
            order_id=order.id,
            order_number=order.order_number,
            payment_intent_id=intent.id,
            total=total,
        )
        self._emit("order.created", order)
        return CheckoutResult(
            client_secret=intent.client_secret,
            payment_intent_id=intent.id,
            order_id=order.id,
            order_number=order.order_number,
            amount=intent.amount,
            currency=intent.currency,
        )

    def confirm_checkout(self, db: Session, user_id: int, payment_intent_id: str) -> Order:
        if orders.find_by_reference_and_user(db, payment_intent_id, user_id) is None:
            raise OrderNotFound()

        # never trust the client's word that the payment went through
        intent = self.gateway.get_intent(payment_intent_id)
        if intent.status != INTENT_SUCCEEDED:
            raise PaymentNotSucceeded(
                f"Payment has not succeeded (status: {intent.status})",
                details={"status": intent.status},
            )

        paid = self._mark_paid(db, payment_intent_id, user_id=user_id)
        if paid is not None:
            logger.info("order_paid", order_id=paid.id, payment_intent_id=payment_intent_id, via="confirm")
            return paid

        current = orders.find_by_reference_and_user(db, payment_intent_id, user_id)
        if current is None:
            raise OrderNotFound()
        if current.status == OrderStatus.PAID:
            logger.info("order_already_paid", order_id=current.id, payment_intent_id=payment_intent_id)
            return current
        raise OrderNotPayable(f"Order is {current.status.value} and can no longer be paid")

    def cancel_checkout(self, db: Session, user_id: int, order_id: int) -> Order:
        order = orders.find_by_id(db, order_id, user_id)
        if order is None:
            raise OrderNotFound()
        if order.status != OrderStatus.PENDING:
            raise OrderNotCancellable(f"Order is {order.status.value}")

        # Stripe refuses to cancel an intent that already succeeded, which
        # keeps a charged order from being cancelled here.
        self.gateway.cancel_intent(order.payment_intent_id)

        cancelled = orders.cancel_if_pending(db, order_id, user_id)
        if cancelled is None:
            db.rollback()
            current = orders.find_by_id(db, order_id, user_id)
            status = current.status.value if current is not None else "missing"
            raise OrderNotCancellable(f"Order is {status}")
        db.commit()
        logger.info("order_cancelled", order_id=order_id, payment_intent_id=cancelled.payment_intent_id)
        self._emit("order.cancelled", cancelled)
        return cancelled

    # -- provider notifications -----------------------------------------

    def handle_notification(self, db: Session, payload: bytes, signature: Optional[str]) -> None:
        """Apply a Stripe webhook delivery.

        Raises InvalidSignature when verification fails. Anything that goes
        wrong after that is logged and swallowed so Stripe gets its 200 and
        does not keep redelivering.
        """
        secret = self.settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            logger.info("webhook_ignored_no_secret")
            return

        event = self.gateway.verify_and_parse_event(payload, signature, secret)
        try:
            self._dispatch(db, event)
        except Exception:
            db.rollback()
            logger.exception("webhook_processing_failed", event_id=event.id, type=event.type)

    def _dispatch(self, db: Session, event: GatewayEvent) -> None:
        if event.type == EVENT_INTENT_SUCCEEDED and event.intent_id:
            paid = self._mark_paid(db, event.intent_id)
            if paid is None:
                logger.info("webhook_noop", event_id=event.id, payment_intent_id=event.intent_id)
            else:
                logger.info("order_paid", order_id=paid.id, payment_intent_id=event.intent_id, via="webhook")
        elif event.type == EVENT_INTENT_FAILED and event.intent_id:
            self._mark_failed(db, event.intent_id)
        else:
            logger.info("webhook_event_ignored", event_id=event.id, type=event.type)

    # -- transitions ----------------------------------------------------

    def _mark_paid(self, db: Session, ref: str, user_id: Optional[int] = None) -> Optional[Order]:
        """pending -> paid; decrements stock only when this call moved the row."""
        try:
            order = orders.transition_if_status(db, ref, (OrderStatus.PENDING,), OrderStatus.PAID, user_id=user_id)
            if order is None:
                db.rollback()
                return None
            catalog.decrement_stock_batch(db, [(it.perfume_id, it.quantity) for it in order.items])
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        self._emit("order.paid", order)
        return order

    def _mark_failed(self, db: Session, ref: str) -> None:
        prior = orders.find_by_reference(db, ref)
        if prior is None:
            logger.info("webhook_unknown_order", payment_intent_id=ref)
            return
        prior_status = prior.status
        order = orders.set_status_unconditional(db, ref, OrderStatus.FAILED)
        db.commit()
        if prior_status == OrderStatus.PAID:
            logger.warning("paid_order_marked_failed", order_id=order.id, payment_intent_id=ref)
        else:
            logger.warning("order_payment_failed", order_id=order.id, payment_intent_id=ref)
        if prior_status != OrderStatus.FAILED:
            self._emit("order.failed", order)

    # -- reads ----------------------------------------------------------

    def list_orders(self, db: Session, user_id: int) -> List[Order]:
        return orders.list_by_user(db, user_id)

    def get_order(self, db: Session, user_id: int, order_id: int) -> Order:
        order = orders.find_by_id(db, order_id, user_id)
        if order is None:
            raise OrderNotFound()
        return order

    def get_payment_intent(self, intent_id: str) -> IntentStatus:
        return self.gateway.get_intent(intent_id)

    def _emit(self, kind: str, order: Order) -> None:
        if self.publisher is None:
            return
        value: Dict[str, Any] = {
            "type": kind,
            "order_id": order.id,
            "order_number": order.order_number,
            "user_id": order.user_id,
            "payment_intent_id": order.payment_intent_id,
            "status": order.status.value,
            "total": order.total,
            "currency": order.currency,
            "items": [{"perfume_id": it.perfume_id, "quantity": it.quantity} for it in order.items],
        }
        self.publisher.send(key=str(order.id), value=value)
