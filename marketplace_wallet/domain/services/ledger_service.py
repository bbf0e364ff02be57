"""
Ledger Service - append-only coin ledger, history and reporting queries
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_wallet.core.config import settings
from marketplace_wallet.core.exceptions import ValidationException
from marketplace_wallet.db.database import utcnow
from marketplace_wallet.db.models.wallet import Wallet
from marketplace_wallet.db.models.wallet_transaction import (
    WalletTransaction,
    WalletTransactionType,
)


@dataclass
class TransactionPage:
    """עמוד תנועות: מהחדשה לישנה"""
    transactions: List[WalletTransaction]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


@dataclass
class WalletPage:
    wallets: List[Wallet]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


@dataclass
class WalletStatistics:
    total_issued: int = 0
    total_redeemed: int = 0
    total_expired: int = 0
    outstanding_balance: int = 0
    wallet_count: int = 0
    generated_at: datetime = field(default_factory=utcnow)


def validate_pagination(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationException("page must be at least 1", field="page")
    if limit < 1 or limit > settings.WALLET_MAX_PAGE_SIZE:
        raise ValidationException(
            f"limit must be between 1 and {settings.WALLET_MAX_PAGE_SIZE}",
            field="limit",
        )


class LedgerService:
    """Ledger writes (append only) and read-side queries over wallets"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append_entry(
        self,
        *,
        wallet_id: int,
        amount: int,
        transaction_type: WalletTransactionType,
        reference_type: str,
        balance_after: int,
        reference_id: Optional[int] = None,
        description: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> WalletTransaction:
        """
        Add a ledger entry to the current transaction and flush it.

        Does not commit: the caller owns the transaction, so the entry and the
        matching balance update land together or not at all. A unique-guard
        violation surfaces here as IntegrityError.
        """
        entry = WalletTransaction(
            wallet_id=wallet_id,
            amount=amount,
            transaction_type=transaction_type,
            reference_type=reference_type,
            reference_id=reference_id,
            balance_after=balance_after,
            description=description,
            expires_at=expires_at if transaction_type == WalletTransactionType.CREDIT else None,
            created_at=created_at or utcnow(),
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def has_reference(
        self,
        wallet_id: int,
        reference_type: str,
        reference_id: Optional[int] = None,
    ) -> bool:
        """Whether the wallet already has an entry with this reference"""
        query = select(WalletTransaction.id).where(
            WalletTransaction.wallet_id == wallet_id,
            WalletTransaction.reference_type == reference_type,
        )
        if reference_id is not None:
            query = query.where(WalletTransaction.reference_id == reference_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def sum_for_wallet(self, wallet_id: int) -> int:
        """Sum of all ledger amounts for a wallet: must equal its balance"""
        result = await self.db.execute(
            select(func.coalesce(func.sum(WalletTransaction.amount), 0))
            .where(WalletTransaction.wallet_id == wallet_id)
        )
        return int(result.scalar_one())

    async def list_transactions(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 10,
    ) -> TransactionPage:
        """Paginated ledger for a user, newest first. No wallet means an empty page."""
        validate_pagination(page, limit)

        wallet_result = await self.db.execute(
            select(Wallet.id).where(Wallet.user_id == user_id)
        )
        wallet_id = wallet_result.scalar_one_or_none()
        if wallet_id is None:
            return TransactionPage(transactions=[], total=0, page=page, limit=limit)

        total_result = await self.db.execute(
            select(func.count(WalletTransaction.id))
            .where(WalletTransaction.wallet_id == wallet_id)
        )
        total = int(total_result.scalar_one())

        result = await self.db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return TransactionPage(
            transactions=list(result.scalars().all()),
            total=total,
            page=page,
            limit=limit,
        )

    async def list_wallets(self, page: int = 1, limit: int = 20) -> WalletPage:
        """All wallets for the admin screen, most recently active first"""
        validate_pagination(page, limit)

        total_result = await self.db.execute(select(func.count(Wallet.id)))
        total = int(total_result.scalar_one())

        result = await self.db.execute(
            select(Wallet)
            .order_by(Wallet.updated_at.desc(), Wallet.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return WalletPage(
            wallets=list(result.scalars().all()),
            total=total,
            page=page,
            limit=limit,
        )

    async def get_statistics(self) -> WalletStatistics:
        """Program-wide aggregates. Read only."""

        def _sum_of(tx_type: WalletTransactionType):
            return func.coalesce(
                func.sum(
                    case(
                        (WalletTransaction.transaction_type == tx_type, WalletTransaction.amount),
                        else_=0,
                    )
                ),
                0,
            )

        ledger_result = await self.db.execute(
            select(
                _sum_of(WalletTransactionType.CREDIT),
                _sum_of(WalletTransactionType.DEBIT),
                _sum_of(WalletTransactionType.EXPIRED),
            )
        )
        issued, redeemed, expired = ledger_result.one()

        wallet_result = await self.db.execute(
            select(func.count(Wallet.id), func.coalesce(func.sum(Wallet.balance), 0))
        )
        wallet_count, outstanding = wallet_result.one()

        return WalletStatistics(
            total_issued=int(issued),
            # חיובים ופקיעות נשמרים בסימן שלילי
            total_redeemed=-int(redeemed),
            total_expired=-int(expired),
            outstanding_balance=int(outstanding),
            wallet_count=int(wallet_count),
        )
