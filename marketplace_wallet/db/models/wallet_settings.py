"""
Wallet Settings Model - Singleton configuration row for the coin program
"""
from decimal import Decimal
from sqlalchemy import Column, Integer, Boolean, Numeric, DateTime, CheckConstraint

from marketplace_wallet.db.database import Base, utcnow

# שורת ההגדרות היחידה: מפתח קבוע מונע יצירת שורה שנייה במקביל
SETTINGS_ROW_ID = 1


class WalletSettings(Base):
    """Global coin program configuration (exactly one row)"""

    __tablename__ = "wallet_settings"
    __table_args__ = (
        CheckConstraint("coin_to_currency_ratio > 0", name="ck_wallet_settings_ratio_positive"),
        CheckConstraint("max_redeemable_coins >= 0", name="ck_wallet_settings_max_redeemable"),
        CheckConstraint("coin_expiry_days >= 0", name="ck_wallet_settings_expiry_days"),
        CheckConstraint("first_purchase_coins >= 0", name="ck_wallet_settings_first_purchase"),
    )

    id = Column(Integer, primary_key=True, default=SETTINGS_ROW_ID)

    is_enabled = Column(Boolean, nullable=False, default=True)
    coin_to_currency_ratio = Column(Numeric(10, 4), nullable=False, default=Decimal("0.10"))
    max_redeemable_coins = Column(Integer, nullable=False, default=500)
    coin_expiry_days = Column(Integer, nullable=False, default=90)
    first_purchase_coins = Column(Integer, nullable=False, default=50)
    min_order_value = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
