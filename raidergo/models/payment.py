from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from decimal import Decimal
from bson.decimal128 import Decimal128
import uuid
from datetime import datetime

PAYMENT_STATUSES = ("pending", "completed", "failed")

class Purchase(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    buyer_id: str
    course_id: str
    amount: Decimal
    currency: str
    payment_status: str = "completed"  # pending, completed, failed
    provider: str  # paypal, verifone
    provider_ref: str  # PayPal order id or Verifone REFNO
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("amount", mode="before")
    @classmethod
    def unwrap_decimal128(cls, value):
        if isinstance(value, Decimal128):
            return value.to_decimal()
        return value

    @field_validator("payment_status")
    @classmethod
    def known_status(cls, value):
        if value not in PAYMENT_STATUSES:
            raise ValueError(f"Unknown payment status: {value}")
        return value

    def to_document(self) -> dict:
        doc = self.model_dump()
        doc["amount"] = Decimal128(str(self.amount))
        return doc

class RecordResult(BaseModel):
    purchase: Purchase
    created: bool  # False when the completion had already been recorded

class VerifiedOrder(BaseModel):
    order_id: str
    status: str
    amount: Decimal
    currency: str
    external_reference: Optional[str] = None

class CaptureRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1)
    course_id: str = Field(alias="courseId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    amount: Optional[Decimal] = None  # Advisory only, never recorded

class CheckoutLinkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: str = Field(alias="courseId", min_length=1)
    user_id: Optional[str] = Field(default=None, alias="userId")
    title: Optional[str] = None
