"""
סכמות משותפות ל-API של הארנק
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from marketplace_wallet.db.models.wallet_transaction import WalletTransactionType


class WalletResponse(BaseModel):
    id: int
    user_id: int
    balance: int
    lifetime_earned: int
    lifetime_redeemed: int
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransactionResponse(BaseModel):
    id: int
    amount: int
    transaction_type: WalletTransactionType
    reference_type: str
    reference_id: Optional[int] = None
    balance_after: int
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class TransactionListResponse(BaseModel):
    transactions: List[TransactionResponse]
    pagination: PaginationInfo


class WalletListResponse(BaseModel):
    wallets: List[WalletResponse]
    pagination: PaginationInfo


class WalletSettingsResponse(BaseModel):
    is_enabled: bool
    coin_to_currency_ratio: float
    max_redeemable_coins: int
    coin_expiry_days: int
    first_purchase_coins: int
    min_order_value: float
    updated_at: Optional[datetime] = None


class UpdateWalletSettingsRequest(BaseModel):
    """עדכון חלקי: רק השדות שנשלחו משתנים. בדיקת טווחים נעשית בשירות."""
    is_enabled: Optional[bool] = None
    coin_to_currency_ratio: Optional[Decimal] = None
    max_redeemable_coins: Optional[int] = None
    coin_expiry_days: Optional[int] = None
    first_purchase_coins: Optional[int] = None
    min_order_value: Optional[Decimal] = None


class RedeemRequest(BaseModel):
    amount: int = Field(..., description="Coins to redeem")
    reference_type: str = Field(
        "ORDER_REDEMPTION", max_length=50, description="Caller tag; reserved internal tags are rejected"
    )
    reference_id: Optional[int] = None
    description: Optional[str] = Field(None, max_length=500)
    order_total: Optional[Decimal] = Field(
        None, description="Order total before discount, checked against min_order_value"
    )


class RedeemResponse(BaseModel):
    wallet: WalletResponse
    discount_amount: float


class CreditRequest(BaseModel):
    user_id: int
    amount: int
    reference_type: str = Field(
        ..., max_length=50, description="e.g. ORDER_EARNING; reserved internal tags are rejected"
    )
    reference_id: Optional[int] = None
    description: Optional[str] = Field(None, max_length=500)


class FirstPurchaseBonusRequest(BaseModel):
    user_id: int
    order_id: int


class RefundRequest(BaseModel):
    user_id: int
    order_id: int
    amount: int
    description: Optional[str] = Field(None, max_length=500)


class AdjustmentRequest(BaseModel):
    user_id: int
    amount: int = Field(..., description="Signed amount; negative debits the wallet")
    description: str = Field(..., min_length=3, max_length=500)


class GrantResponse(BaseModel):
    """תוצאת פעולה אידמפוטנטית: granted=False אם כבר בוצעה בעבר"""
    granted: bool
    wallet: Optional[WalletResponse] = None


class WalletStatisticsResponse(BaseModel):
    total_issued: int
    total_redeemed: int
    total_expired: int
    outstanding_balance: int
    wallet_count: int
    generated_at: datetime

    class Config:
        from_attributes = True


class ExpirySweepResponse(BaseModel):
    success: bool
    expired_coins_count: int
