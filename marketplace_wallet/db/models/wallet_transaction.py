"""
Wallet Transaction Model - Immutable, append-only coin ledger
"""
import enum
from sqlalchemy import (
    Column,
    Integer,
    DateTime,
    ForeignKey,
    String,
    Enum as SQLEnum,
    Index,
    text,
)

from marketplace_wallet.db.database import Base, utcnow


class WalletTransactionType(str, enum.Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    EXPIRED = "EXPIRED"


class ReferenceType(str, enum.Enum):
    """Well-known reference tags; callers may pass their own tags except the reserved ones"""

    FIRST_PURCHASE = "FIRST_PURCHASE"
    ORDER_REDEMPTION = "ORDER_REDEMPTION"
    ORDER_REFUND = "ORDER_REFUND"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"
    EXPIRED = "EXPIRED"


# תגים שרק השירות עצמו כותב; האינדקסים הייחודיים והפקיעה נשענים עליהם
RESERVED_REFERENCE_TYPES = frozenset(
    t.value
    for t in (
        ReferenceType.FIRST_PURCHASE,
        ReferenceType.ORDER_REFUND,
        ReferenceType.MANUAL_ADJUSTMENT,
        ReferenceType.EXPIRED,
    )
)


class WalletTransaction(Base):
    """
    One signed ledger entry. Rows are never updated or deleted;
    corrections are made by appending a compensating entry.
    """

    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # חיובי לזיכוי, שלילי לחיוב ולפקיעה
    transaction_type = Column(SQLEnum(WalletTransactionType), nullable=False)
    reference_type = Column(String(50), nullable=False)
    # מזהה הזמנה; ברשומת EXPIRED מזהה רשומת ה-CREDIT שקוזזה
    reference_id = Column(Integer, nullable=True)
    balance_after = Column(Integer, nullable=False)

    description = Column(String(500), nullable=True)
    expires_at = Column(DateTime, nullable=True)  # רק ברשומות CREDIT
    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        # קיזוז אחד לכל מנת מטבעות: מונע פקיעה כפולה בריצות מקבילות של ה-sweep
        Index(
            "uq_wallet_tx_expired_reference",
            "reference_id",
            unique=True,
            postgresql_where=text("transaction_type = 'EXPIRED' AND reference_type = 'EXPIRED'"),
            sqlite_where=text("transaction_type = 'EXPIRED' AND reference_type = 'EXPIRED'"),
        ),
        # בונוס רכישה ראשונה: פעם אחת לארנק
        Index(
            "uq_wallet_tx_first_purchase",
            "wallet_id",
            unique=True,
            postgresql_where=text("reference_type = 'FIRST_PURCHASE'"),
            sqlite_where=text("reference_type = 'FIRST_PURCHASE'"),
        ),
        # החזר מטבעות: פעם אחת לכל הזמנה
        Index(
            "uq_wallet_tx_order_refund",
            "wallet_id",
            "reference_id",
            unique=True,
            postgresql_where=text("reference_type = 'ORDER_REFUND'"),
            sqlite_where=text("reference_type = 'ORDER_REFUND'"),
        ),
        Index("ix_wallet_tx_type_expires_at", "transaction_type", "expires_at"),
    )
