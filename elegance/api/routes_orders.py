from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from typing import Optional
from sqlalchemy.orm import Session

from elegance.api.deps import get_current_user, get_db, get_reconciler
from elegance.api.schemas import (
    ConfirmPayload,
    CreatePaymentIntent,
    OrderRead,
    PaymentIntentCreated,
    PaymentIntentRead,
    ShippingInfo,
)
from elegance.db.models import User
from elegance.services.reconciliation import LineItem, OrderReconciler

router = APIRouter()  # main.py mounts at /api/orders


def _order(order) -> dict:
    return OrderRead.from_order(order).public()


@router.post("/create-payment-intent")
def create_payment_intent(
    payload: CreatePaymentIntent,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reconciler: OrderReconciler = Depends(get_reconciler),
):
    shipping = (payload.shipping or ShippingInfo()).model_dump(by_alias=True)
    items = [LineItem(perfume_id=i.perfume, name=i.name, quantity=i.quantity, price=i.price) for i in payload.items]
    result = reconciler.initiate_checkout(
        db,
        user,
        items,
        shipping=shipping,
        subtotal=payload.subtotal,
        shipping_cost=payload.shipping_cost,
        amount=payload.amount,
    )
    out = PaymentIntentCreated(
        client_secret=result.client_secret,
        payment_intent_id=result.payment_intent_id,
        order_id=result.order_id,
        order_number=result.order_number,
        amount=result.amount,
        currency=result.currency,
    )
    return {"success": True, "message": "PaymentIntent created", "data": out.model_dump(by_alias=True)}


@router.post("/confirm")
def confirm_order(
    payload: ConfirmPayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reconciler: OrderReconciler = Depends(get_reconciler),
):
    order = reconciler.confirm_checkout(db, user.id, payload.payment_intent_id)
    return {"success": True, "data": {"order": _order(order)}}


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    reconciler: OrderReconciler = Depends(get_reconciler),
):
    # signature is computed over the exact bytes, so read the raw body
    payload = await request.body()
    await run_in_threadpool(reconciler.handle_notification, db, payload, stripe_signature)
    return {"received": True}


@router.get("/myorders")
def my_orders(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reconciler: OrderReconciler = Depends(get_reconciler),
):
    return {"success": True, "data": {"orders": [_order(o) for o in reconciler.list_orders(db, user.id)]}}


@router.get("/payment-intent/{intent_id}")
def get_payment_intent(
    intent_id: str,
    _: User = Depends(get_current_user),
    reconciler: OrderReconciler = Depends(get_reconciler),
):
    intent = reconciler.get_payment_intent(intent_id)
    data = PaymentIntentRead(id=intent.id, status=intent.status, amount=intent.amount, currency=intent.currency)
    return {"success": True, "data": data.model_dump(by_alias=True)}


@router.get("/{order_id}")
def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reconciler: OrderReconciler = Depends(get_reconciler),
):
    return {"success": True, "data": {"order": _order(reconciler.get_order(db, user.id, order_id))}}


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reconciler: OrderReconciler = Depends(get_reconciler),
):
    return {"success": True, "data": {"order": _order(reconciler.cancel_checkout(db, user.id, order_id))}}
