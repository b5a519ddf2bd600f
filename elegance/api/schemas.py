from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime

from elegance.core.security import Role
from elegance.db.models import Category, Order, OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- auth ---

class RegisterPayload(BaseModel):
    name: str = Field(default="", max_length=120)
    email: EmailStr
    password: str = Field(min_length=8)

class LoginPayload(BaseModel):
    email: EmailStr
    password: str

class UserRead(CamelModel):
    id: int
    name: str
    email: EmailStr
    role: Role

class TokenRead(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


# --- catalog ---

class PerfumeCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    brand: str = Field(min_length=1)
    description: str = Field(min_length=1, max_length=500)
    price: int = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    category: Category = Category.UNISEX
    image: Optional[str] = None

class PerfumeRead(CamelModel):
    id: int
    name: str
    brand: str
    description: str
    price: int
    stock: int
    category: Category
    image: str
    is_active: bool

class RestockPayload(BaseModel):
    quantity: int = Field(ge=1)


# --- orders ---

class OrderItemIn(CamelModel):
    perfume: int
    name: str = ""
    quantity: int = Field(ge=1)
    price: int = Field(ge=0)

class ShippingInfo(CamelModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    region: str = ""
    zip: str = ""

class CreatePaymentIntent(CamelModel):
    amount: Optional[float] = Field(default=None, allow_inf_nan=False)
    items: List[OrderItemIn] = []
    shipping: Optional[ShippingInfo] = None
    subtotal: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    shipping_cost: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)

class ConfirmPayload(CamelModel):
    payment_intent_id: str = Field(min_length=1)

class PaymentIntentCreated(CamelModel):
    client_secret: str
    payment_intent_id: str
    order_id: int
    order_number: str
    amount: int
    currency: str

class PaymentIntentRead(CamelModel):
    id: str
    status: str
    amount: int
    currency: str

class OrderItemRead(CamelModel):
    perfume: int
    name: str
    quantity: int
    price: int

class OrderRead(CamelModel):
    """Public view of an order: owner and audit columns stay out."""
    id: int
    order_number: str
    items: List[OrderItemRead]
    shipping: ShippingInfo
    subtotal: int
    shipping_cost: int
    total: int
    currency: str
    status: OrderStatus
    payment_intent_id: str
    created_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderRead":
        return cls(
            id=order.id,
            order_number=order.order_number,
            items=[
                OrderItemRead(perfume=it.perfume_id, name=it.name, quantity=it.quantity, price=it.unit_price)
                for it in order.items
            ],
            shipping=ShippingInfo.model_validate(order.shipping or {}),
            subtotal=order.subtotal,
            shipping_cost=order.shipping_cost,
            total=order.total,
            currency=order.currency,
            status=order.status,
            payment_intent_id=order.payment_intent_id,
            created_at=order.created_at,
        )

    def public(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
