# dream60/schemas/payment.py
from typing import Optional

from pydantic import BaseModel, Field


class EntryOrderCreate(BaseModel):
    """Request schema for an hourly auction entry fee order"""

    hourly_auction_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, description="Entry fee in rupees")

    class Config:
        json_schema_extra = {
            "example": {
                "hourly_auction_id": "0f8fad5b-d9cb-469f-a165-70867728950e",
                "amount": 49,
            }
        }


class PaymentVerify(BaseModel):
    """Checkout result posted back by the client"""

    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PrizeClaimOrderCreate(BaseModel):
    hourly_auction_id: str = Field(..., min_length=1)


class PrizeClaimPaymentVerify(PaymentVerify):
    upi_id: str = Field(..., description="UPI ID the prize is paid out to")


class PrizeClaimSubmit(BaseModel):
    """Direct claim submission (payment settled out of band)"""

    hourly_auction_id: str = Field(..., min_length=1)
    upi_id: str
    payment_reference: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "hourly_auction_id": "0f8fad5b-d9cb-469f-a165-70867728950e",
                "upi_id": "player1@upi",
                "payment_reference": "pay_29QQoUBi66xm2f",
            }
        }


class PrizeClaimCancel(BaseModel):
    hourly_auction_id: str = Field(..., min_length=1)
