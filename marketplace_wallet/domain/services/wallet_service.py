"""
Wallet Service - loyalty coin balances and atomic mutations

Every mutation follows the same shape:
1. Load a settings snapshot and validate the request (no writes yet)
2. Lock the wallet row (SELECT ... FOR UPDATE)
3. Apply the balance change as one guarded UPDATE (balance never below zero)
4. Append the matching ledger entry
5. Commit both together, or roll both back
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select, update, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_wallet.core.exceptions import (
    BelowMinimumOrderValueError,
    ExceedsMaxRedeemableError,
    InsufficientBalanceError,
    InvalidAmountError,
    ValidationException,
    WalletDisabledError,
)
from marketplace_wallet.core.logging import get_logger
from marketplace_wallet.db.database import utcnow
from marketplace_wallet.db.models.wallet import Wallet
from marketplace_wallet.db.models.wallet_transaction import (
    RESERVED_REFERENCE_TYPES,
    ReferenceType,
    WalletTransactionType,
)
from marketplace_wallet.domain.services.ledger_service import LedgerService
from marketplace_wallet.domain.services.settings_service import (
    WalletConfig,
    WalletSettingsService,
)

logger = get_logger(__name__)

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class RedemptionResult:
    """Outcome of a redemption: the caller applies the discount to its order"""
    wallet: Wallet
    discount_amount: Decimal


def compute_discount(amount: int, ratio: Decimal) -> Decimal:
    """Currency value of `amount` coins, rounded half-up to 2 decimal places"""
    return (Decimal(amount) * Decimal(str(ratio))).quantize(_CENT, rounding=ROUND_HALF_UP)


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)


def _require_caller_reference(reference_type: str) -> None:
    """Tags the service writes itself are not accepted from callers"""
    if reference_type in RESERVED_REFERENCE_TYPES:
        raise ValidationException(
            f"reference_type {reference_type} is reserved for internal entries",
            field="reference_type",
        )


class WalletService:
    """Service for managing user coin wallets"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings_service = WalletSettingsService(db)
        self.ledger = LedgerService(db)

    # ==================== חשבונות ====================

    async def get_wallet(self, user_id: int) -> Optional[Wallet]:
        """Read-only lookup; never creates a wallet"""
        result = await self.db.execute(
            select(Wallet)
            .where(Wallet.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_wallet_row(self, user_id: int) -> Wallet:
        """Insert-or-fetch inside the current transaction (no commit).

        Uses a savepoint + IntegrityError fallback on the unique user_id, so
        concurrent first use by the same user ends with one wallet.
        """
        wallet = await self.get_wallet(user_id)
        if wallet:
            return wallet

        try:
            async with self.db.begin_nested():
                wallet = Wallet(
                    user_id=user_id,
                    balance=0,
                    lifetime_earned=0,
                    lifetime_redeemed=0,
                )
                self.db.add(wallet)
        except IntegrityError:
            # race condition: הארנק נוצר במקביל עבור אותו משתמש
            logger.info(
                "IntegrityError ביצירת ארנק: כנראה נוצר במקביל, מנסה למצוא",
                extra_data={"user_id": user_id},
            )
            wallet = await self.get_wallet(user_id)
            if wallet is None:
                raise
            return wallet

        logger.info("Wallet created", extra_data={"user_id": user_id, "wallet_id": wallet.id})
        return wallet

    async def get_or_create_wallet(self, user_id: int) -> Wallet:
        """Get existing wallet or create a new one with zero balances"""
        async with self._atomic():
            wallet = await self._get_or_create_wallet_row(user_id)
        return wallet

    async def _lock_wallet(self, wallet_id: int) -> Wallet:
        """Row lock on the wallet until commit/rollback; other wallets are not blocked"""
        result = await self.db.execute(
            select(Wallet)
            .where(Wallet.id == wallet_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _apply_balance_change(
        self,
        wallet_id: int,
        delta: int,
        *,
        earned: int = 0,
        redeemed: int = 0,
        now: datetime,
    ) -> Optional[int]:
        """
        Apply `delta` to the balance in a single UPDATE and return the new balance.

        Debits carry a `balance >= -delta` guard, so the check runs against the
        balance at write time; None means the guard rejected the update.
        """
        values = {
            "balance": Wallet.balance + delta,
            "updated_at": now,
        }
        if earned:
            values["lifetime_earned"] = Wallet.lifetime_earned + earned
        if redeemed > 0:
            values["lifetime_redeemed"] = Wallet.lifetime_redeemed + redeemed
        elif redeemed < 0:
            # החזר: מקטינים את סך המומש, לא מתחת לאפס
            values["lifetime_redeemed"] = case(
                (Wallet.lifetime_redeemed > -redeemed, Wallet.lifetime_redeemed + redeemed),
                else_=0,
            )

        stmt = update(Wallet).where(Wallet.id == wallet_id)
        if delta < 0:
            stmt = stmt.where(Wallet.balance >= -delta)
        stmt = (
            stmt.values(**values)
            .returning(Wallet.balance)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @asynccontextmanager
    async def _atomic(self):
        """Commit on success, roll back everything on any error"""
        try:
            yield
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    # ==================== זיכוי ====================

    async def credit(
        self,
        user_id: int,
        amount: int,
        reference_type: str,
        reference_id: Optional[int] = None,
        description: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Wallet:
        """Earn coins. The new lot expires coin_expiry_days from now."""
        config = await self.settings_service.get_settings()
        if not config.is_enabled:
            raise WalletDisabledError(user_id)
        _require_positive(amount)
        _require_caller_reference(reference_type)

        return await self._credit(
            config,
            user_id,
            amount,
            reference_type,
            reference_id,
            description or f"Earned {amount} coins",
            now=now,
        )

    async def _credit(
        self,
        config: Optional[WalletConfig],
        user_id: int,
        amount: int,
        reference_type: str,
        reference_id: Optional[int],
        description: str,
        *,
        now: Optional[datetime] = None,
        earned: Optional[int] = None,
        redeemed: int = 0,
    ) -> Wallet:
        now = now or utcnow()
        expires_at = now + timedelta(days=config.coin_expiry_days) if config else None

        async with self._atomic():
            wallet = await self._get_or_create_wallet_row(user_id)
            wallet = await self._lock_wallet(wallet.id)
            new_balance = await self._apply_balance_change(
                wallet.id,
                amount,
                earned=amount if earned is None else earned,
                redeemed=redeemed,
                now=now,
            )
            entry = await self.ledger.append_entry(
                wallet_id=wallet.id,
                amount=amount,
                transaction_type=WalletTransactionType.CREDIT,
                reference_type=reference_type,
                reference_id=reference_id,
                balance_after=new_balance,
                description=description,
                expires_at=expires_at,
                created_at=now,
            )

        await self.db.refresh(wallet)
        logger.info(
            "Coins credited",
            extra_data={
                "user_id": user_id,
                "wallet_id": wallet.id,
                "transaction_id": entry.id,
                "amount": amount,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "balance": wallet.balance,
            },
        )
        return wallet

    # ==================== מימוש ====================

    async def redeem(
        self,
        user_id: int,
        amount: int,
        reference_type: str = ReferenceType.ORDER_REDEMPTION.value,
        reference_id: Optional[int] = None,
        description: Optional[str] = None,
        *,
        order_total: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> RedemptionResult:
        """
        Spend coins for a discount.

        Returns the updated wallet and the currency discount; applying the
        discount to the order total is the caller's job.
        """
        config = await self.settings_service.get_settings()
        if not config.is_enabled:
            raise WalletDisabledError(user_id)
        _require_positive(amount)
        _require_caller_reference(reference_type)
        if amount > config.max_redeemable_coins:
            raise ExceedsMaxRedeemableError(user_id, amount, config.max_redeemable_coins)
        if order_total is not None and config.min_order_value > 0:
            order_total = Decimal(str(order_total))
            if order_total < config.min_order_value:
                raise BelowMinimumOrderValueError(user_id, order_total, config.min_order_value)

        wallet = await self.get_wallet(user_id)
        if wallet is None:
            raise InsufficientBalanceError(user_id, 0, amount)

        discount_amount = compute_discount(amount, config.coin_to_currency_ratio)
        now = now or utcnow()

        async with self._atomic():
            wallet = await self._lock_wallet(wallet.id)
            if wallet.balance < amount:
                raise InsufficientBalanceError(user_id, wallet.balance, amount)

            new_balance = await self._apply_balance_change(
                wallet.id, -amount, redeemed=amount, now=now
            )
            if new_balance is None:
                # היתרה השתנתה בין הקריאה לכתיבה: מימוש מקביל הקדים אותנו
                raise InsufficientBalanceError(user_id, wallet.balance, amount)

            entry = await self.ledger.append_entry(
                wallet_id=wallet.id,
                amount=-amount,
                transaction_type=WalletTransactionType.DEBIT,
                reference_type=reference_type,
                reference_id=reference_id,
                balance_after=new_balance,
                description=description or f"Redeemed {amount} coins for {discount_amount} discount",
                created_at=now,
            )

        await self.db.refresh(wallet)
        logger.info(
            "Coins redeemed",
            extra_data={
                "user_id": user_id,
                "wallet_id": wallet.id,
                "transaction_id": entry.id,
                "amount": amount,
                "discount_amount": discount_amount,
                "reference_id": reference_id,
                "balance": wallet.balance,
            },
        )
        return RedemptionResult(wallet=wallet, discount_amount=discount_amount)

    # ==================== התאמה ידנית ====================

    async def adjust(
        self,
        user_id: int,
        signed_amount: int,
        description: str,
        *,
        now: Optional[datetime] = None,
    ) -> Wallet:
        """Administrative correction. Negative adjustments still cannot overdraw."""
        if isinstance(signed_amount, bool) or not isinstance(signed_amount, int):
            raise InvalidAmountError(signed_amount, "Adjustment amount must be an integer")
        if signed_amount == 0:
            raise InvalidAmountError(signed_amount, "Adjustment amount cannot be zero")

        if signed_amount > 0:
            config = await self.settings_service.find_settings()
            return await self._credit(
                config,
                user_id,
                signed_amount,
                ReferenceType.MANUAL_ADJUSTMENT.value,
                None,
                description,
                now=now,
            )

        amount = -signed_amount
        wallet = await self.get_wallet(user_id)
        if wallet is None:
            raise InsufficientBalanceError(user_id, 0, amount)

        now = now or utcnow()
        async with self._atomic():
            wallet = await self._lock_wallet(wallet.id)
            if wallet.balance < amount:
                raise InsufficientBalanceError(user_id, wallet.balance, amount)

            new_balance = await self._apply_balance_change(wallet.id, signed_amount, now=now)
            if new_balance is None:
                raise InsufficientBalanceError(user_id, wallet.balance, amount)

            await self.ledger.append_entry(
                wallet_id=wallet.id,
                amount=signed_amount,
                transaction_type=WalletTransactionType.DEBIT,
                reference_type=ReferenceType.MANUAL_ADJUSTMENT.value,
                balance_after=new_balance,
                description=description,
                created_at=now,
            )

        await self.db.refresh(wallet)
        logger.info(
            "Manual wallet debit",
            extra_data={"user_id": user_id, "amount": signed_amount, "balance": wallet.balance},
        )
        return wallet

    # ==================== בונוס רכישה ראשונה ====================

    async def grant_first_purchase_bonus(
        self,
        user_id: int,
        order_id: int,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[Wallet]:
        """
        Credit the first-purchase bonus once per wallet.

        Returns None (no-op) when a FIRST_PURCHASE entry already exists, or when
        the configured bonus is zero.
        """
        config = await self.settings_service.get_settings()
        if not config.is_enabled:
            raise WalletDisabledError(user_id)

        if await self._has_reference(user_id, ReferenceType.FIRST_PURCHASE.value):
            logger.info(
                "First purchase bonus already granted",
                extra_data={"user_id": user_id, "order_id": order_id},
            )
            return None

        if config.first_purchase_coins <= 0:
            return None

        try:
            return await self._credit(
                config,
                user_id,
                config.first_purchase_coins,
                ReferenceType.FIRST_PURCHASE.value,
                order_id,
                f"First purchase bonus for order #{order_id}",
                now=now,
            )
        except IntegrityError:
            # קריאה מקבילה הקדימה אותנו: האינדקס הייחודי חסם זיכוי כפול
            if await self._has_reference(user_id, ReferenceType.FIRST_PURCHASE.value):
                return None
            raise

    # ==================== החזר בביטול הזמנה ====================

    async def refund_redemption(
        self,
        user_id: int,
        order_id: int,
        amount: int,
        description: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[Wallet]:
        """
        Return coins spent on an order that was cancelled.

        Allowed even while the program is disabled. Idempotent per order:
        returns None when the order was already refunded.
        """
        _require_positive(amount)

        if await self._has_reference(user_id, ReferenceType.ORDER_REFUND.value, order_id):
            logger.info(
                "Order already refunded to wallet",
                extra_data={"user_id": user_id, "order_id": order_id},
            )
            return None

        config = await self.settings_service.find_settings()
        try:
            return await self._credit(
                config,
                user_id,
                amount,
                ReferenceType.ORDER_REFUND.value,
                order_id,
                description or f"Refund for cancelled order #{order_id}",
                now=now,
                earned=0,
                redeemed=-amount,
            )
        except IntegrityError:
            if await self._has_reference(user_id, ReferenceType.ORDER_REFUND.value, order_id):
                return None
            raise

    async def _has_reference(
        self,
        user_id: int,
        reference_type: str,
        reference_id: Optional[int] = None,
    ) -> bool:
        wallet = await self.get_wallet(user_id)
        if wallet is None:
            return False
        return await self.ledger.has_reference(wallet.id, reference_type, reference_id)
