"""
Wallet Model - Coin balance per user
"""
from sqlalchemy import Column, Integer, BigInteger, DateTime, CheckConstraint

from marketplace_wallet.db.database import Base, utcnow


class Wallet(Base):
    """
    Current coin balance per user.

    The balance is a cached aggregate of the ledger (wallet_transactions) and is
    only ever changed together with a ledger append, inside one transaction.
    """

    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallets_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # מזהה המשתמש מגיע ממערכת ההזדהות החיצונית: אין FK
    user_id = Column(BigInteger, unique=True, nullable=False, index=True)

    balance = Column(Integer, nullable=False, default=0)
    lifetime_earned = Column(Integer, nullable=False, default=0)
    lifetime_redeemed = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
