"""PayOS gateway request/response schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PaymentLinkItem(BaseModel):
    """A line shown on the PayOS checkout page."""

    name: str
    quantity: int = Field(ge=1)
    price: int = Field(ge=0)


class PaymentLinkRequest(BaseModel):
    """Data needed to create a PayOS hosted checkout link.

    order_id is our order identifier and is only used to build the
    return/cancel URLs; order_code is the gateway's integer order code.
    """

    order_code: int = Field(description="PayOS order code (integer)")
    amount: int = Field(ge=0, description="Amount in VND")
    description: str = Field(max_length=255, description="Payment description")
    order_id: str | None = Field(default=None, description="Our order id, passed back on redirect")
    return_url: str | None = None
    cancel_url: str | None = None
    buyer_name: str | None = None
    buyer_email: str | None = None
    buyer_phone: str | None = None
    buyer_address: str | None = None
    items: list[PaymentLinkItem] = Field(default_factory=list)


class PaymentLinkData(BaseModel):
    """Payment link returned by PayOS."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    payment_link_id: str = Field(alias="paymentLinkId")
    checkout_url: str | None = Field(default=None, alias="checkoutUrl")
    order_code: int = Field(alias="orderCode")
    amount: int
    status: str | None = None
    qr_code: str | None = Field(default=None, alias="qrCode")


class GatewayResult(BaseModel):
    """Uniform result of every gateway call.

    error is 0 on success and 1 on failure. Gateway failures are reported
    through this value instead of exceptions so callers can degrade.
    """

    error: int = Field(description="0 on success, 1 on failure")
    message: str
    data: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        """True when the call succeeded and returned data."""
        return self.error == 0 and self.data is not None


class PayOSWebhookData(BaseModel):
    """Transaction data carried by a PayOS webhook."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    order_code: int = Field(alias="orderCode")
    amount: int
    description: str | None = None
    account_number: str | None = Field(default=None, alias="accountNumber")
    reference: str | None = None
    transaction_date_time: str | None = Field(default=None, alias="transactionDateTime")
    currency: str | None = None
    payment_link_id: str | None = Field(default=None, alias="paymentLinkId")
    code: str
    desc: str | None = None


class PayOSWebhookPayload(BaseModel):
    """Body of the PayOS webhook POST."""

    model_config = ConfigDict(extra="allow")

    code: str
    desc: str | None = None
    success: bool | None = None
    data: PayOSWebhookData
    signature: str
