"""
Expiry Service - periodic sweep that expires stale coin lots

Each CREDIT entry whose expires_at has passed gets exactly one compensating
EXPIRED entry (reference_id = the credit's id). The partial unique index on
(EXPIRED entries, reference_id) makes reruns and concurrent sweeps
safe; the NOT EXISTS filter just keeps reruns cheap.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, exists, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from marketplace_wallet.core.exceptions import ConcurrentBalanceChangeError
from marketplace_wallet.core.logging import get_logger, log_async_operation
from marketplace_wallet.db.database import utcnow
from marketplace_wallet.db.models.wallet import Wallet
from marketplace_wallet.db.models.wallet_transaction import (
    ReferenceType,
    WalletTransaction,
    WalletTransactionType,
)
from marketplace_wallet.domain.services.ledger_service import LedgerService

logger = get_logger(__name__)

# (credit_id, wallet_id, amount)
ExpirableLot = Tuple[int, int, int]


class ExpiryService:
    """Finds expired, un-offset credit lots and writes their EXPIRED entries"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = LedgerService(db)

    async def find_expirable_lots(self, now: datetime) -> List[ExpirableLot]:
        offset = aliased(WalletTransaction)
        already_offset = exists().where(
            offset.transaction_type == WalletTransactionType.EXPIRED,
            offset.reference_type == ReferenceType.EXPIRED.value,
            offset.reference_id == WalletTransaction.id,
        )
        result = await self.db.execute(
            select(
                WalletTransaction.id,
                WalletTransaction.wallet_id,
                WalletTransaction.amount,
            )
            .where(
                WalletTransaction.transaction_type == WalletTransactionType.CREDIT,
                WalletTransaction.expires_at.is_not(None),
                WalletTransaction.expires_at <= now,
                ~already_offset,
            )
            .order_by(WalletTransaction.expires_at, WalletTransaction.id)
        )
        # ערכי Python רגילים: אחרי rollback אובייקטי ORM עוברים expire
        return [(row[0], row[1], row[2]) for row in result.all()]

    @log_async_operation("process_expired_coins", result_key="coins_expired")
    async def process_expired_coins(self, now: Optional[datetime] = None) -> int:
        """
        Expire every lot past its expiry timestamp. Returns the coins removed.

        Each lot is its own transaction. A failing lot is logged, rolled back
        and left for the next run; it never aborts the batch.
        """
        now = now or utcnow()
        lots = await self.find_expirable_lots(now)

        coins_expired = 0
        lots_expired = 0
        lots_skipped = 0
        lots_failed = 0

        for credit_id, wallet_id, amount in lots:
            try:
                removed = await self._expire_lot(credit_id, wallet_id, amount, now)
            except Exception as e:
                lots_failed += 1
                logger.error(
                    "כשלון בפקיעת מנת מטבעות",
                    extra_data={
                        "credit_transaction_id": credit_id,
                        "wallet_id": wallet_id,
                        "error": str(e),
                    },
                    exc_info=True,
                )
                continue

            if removed is None:
                lots_skipped += 1
            else:
                lots_expired += 1
                coins_expired += removed

        logger.info(
            "סיום ריצת פקיעת מטבעות",
            extra_data={
                "lots_found": len(lots),
                "lots_expired": lots_expired,
                "lots_skipped": lots_skipped,
                "lots_failed": lots_failed,
                "coins_expired": coins_expired,
            },
        )
        return coins_expired

    async def _expire_lot(
        self,
        credit_id: int,
        wallet_id: int,
        amount: int,
        now: datetime,
    ) -> Optional[int]:
        """
        Offset one credit lot. Returns coins removed, or None when another run
        already offset it.

        The balance is floored at zero: coins from this lot that were already
        spent are not clawed back, and the EXPIRED entry records only what was
        actually removed, so the ledger still sums to the balance.
        """
        try:
            result = await self.db.execute(
                select(Wallet)
                .where(Wallet.id == wallet_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            wallet = result.scalar_one()
            removed = min(amount, wallet.balance)
            balance_after = wallet.balance

            if removed > 0:
                update_result = await self.db.execute(
                    update(Wallet)
                    .where(Wallet.id == wallet_id, Wallet.balance >= removed)
                    .values(balance=Wallet.balance - removed, updated_at=now)
                    .returning(Wallet.balance)
                    .execution_options(synchronize_session=False)
                )
                balance_after = update_result.scalar_one_or_none()
                if balance_after is None:
                    raise ConcurrentBalanceChangeError(wallet_id)

            try:
                await self.ledger.append_entry(
                    wallet_id=wallet_id,
                    amount=-removed,
                    transaction_type=WalletTransactionType.EXPIRED,
                    reference_type=ReferenceType.EXPIRED.value,
                    reference_id=credit_id,
                    balance_after=balance_after,
                    description=(
                        f"Expired coins from credit #{credit_id} "
                        f"(lot of {amount}, removed {removed})"
                    ),
                    created_at=now,
                )
            except IntegrityError:
                # ריצה מקבילה כבר קיזזה את המנה: מבטלים גם את עדכון היתרה
                await self.db.rollback()
                logger.info(
                    "Credit lot already expired by another run",
                    extra_data={"credit_transaction_id": credit_id},
                )
                return None

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Coin lot expired",
            extra_data={
                "credit_transaction_id": credit_id,
                "wallet_id": wallet_id,
                "lot_amount": amount,
                "removed": removed,
                "balance": balance_after,
            },
        )
        return removed
