"""
Wallet Settings Service - the singleton coin program configuration
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_wallet.core.config import settings as app_settings
from marketplace_wallet.core.exceptions import InvalidSettingsError, SettingsNotConfiguredError
from marketplace_wallet.core.logging import get_logger
from marketplace_wallet.db.models.wallet_settings import WalletSettings, SETTINGS_ROW_ID

logger = get_logger(__name__)

_INT_FIELDS = ("max_redeemable_coins", "coin_expiry_days", "first_purchase_coins")
_DECIMAL_FIELDS = ("coin_to_currency_ratio", "min_order_value")
# תואם לעמודות Numeric(10, 4) ו-Numeric(10, 2) בטבלת wallet_settings
_DECIMAL_PRECISION = 10
_DECIMAL_PLACES = {"coin_to_currency_ratio": 4, "min_order_value": 2}
UPDATABLE_FIELDS = frozenset(("is_enabled",) + _INT_FIELDS + _DECIMAL_FIELDS)


@dataclass(frozen=True)
class WalletConfig:
    """Immutable snapshot of the settings row, loaded once per operation"""

    is_enabled: bool
    coin_to_currency_ratio: Decimal
    max_redeemable_coins: int
    coin_expiry_days: int
    first_purchase_coins: int
    min_order_value: Decimal
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: WalletSettings) -> "WalletConfig":
        return cls(
            is_enabled=bool(row.is_enabled),
            coin_to_currency_ratio=Decimal(str(row.coin_to_currency_ratio)),
            max_redeemable_coins=int(row.max_redeemable_coins),
            coin_expiry_days=int(row.coin_expiry_days),
            first_purchase_coins=int(row.first_purchase_coins),
            min_order_value=Decimal(str(row.min_order_value)),
            updated_at=row.updated_at,
        )


def validate_settings_update(changes: Mapping[str, Any]) -> dict[str, Any]:
    """
    Type/range check for a partial settings update.

    Returns the normalised values; raises InvalidSettingsError on the first bad field.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        field = sorted(unknown)[0]
        raise InvalidSettingsError(f"Unknown wallet setting: {field}", field=field)

    clean: dict[str, Any] = {}
    for field, value in changes.items():
        if field == "is_enabled":
            if not isinstance(value, bool):
                raise InvalidSettingsError("is_enabled must be a boolean", field=field)
            clean[field] = value
        elif field in _INT_FIELDS:
            # bool הוא תת-מחלקה של int: לא מקבלים True/False כמספר
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidSettingsError(f"{field} must be an integer", field=field)
            if value < 0:
                raise InvalidSettingsError(f"{field} must be non-negative", field=field)
            clean[field] = value
        else:
            if isinstance(value, bool):
                raise InvalidSettingsError(f"{field} must be a number", field=field)
            try:
                number = Decimal(str(value))
            except (InvalidOperation, ValueError):
                raise InvalidSettingsError(f"{field} must be a number", field=field)
            if not number.is_finite():
                raise InvalidSettingsError(f"{field} must be a finite number", field=field)
            if field == "coin_to_currency_ratio" and number <= 0:
                raise InvalidSettingsError("coin_to_currency_ratio must be positive", field=field)
            if number < 0:
                raise InvalidSettingsError(f"{field} must be non-negative", field=field)
            places = _DECIMAL_PLACES[field]
            if number >= Decimal(10) ** (_DECIMAL_PRECISION - places):
                raise InvalidSettingsError(f"{field} is too large", field=field)
            # העמודה הייתה מעגלת בשקט ערך עם יותר ספרות אחרי הנקודה
            if number != number.quantize(Decimal(1).scaleb(-places)):
                raise InvalidSettingsError(
                    f"{field} allows at most {places} decimal places", field=field
                )
            clean[field] = number
    return clean


class WalletSettingsService:
    """Read and update the single wallet settings row"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self) -> Optional[WalletSettings]:
        result = await self.db.execute(
            select(WalletSettings)
            .where(WalletSettings.id == SETTINGS_ROW_ID)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_settings(self) -> WalletConfig:
        """Current settings snapshot; raises SettingsNotConfiguredError if no row exists"""
        row = await self._get_row()
        if row is None:
            raise SettingsNotConfiguredError()
        return WalletConfig.from_row(row)

    async def find_settings(self) -> Optional[WalletConfig]:
        """Like get_settings, but returns None instead of raising"""
        row = await self._get_row()
        return WalletConfig.from_row(row) if row else None

    async def update_settings(self, changes: Mapping[str, Any]) -> WalletConfig:
        """
        Merge a partial update into the singleton row, creating it if absent.

        Validation happens before anything is written. The new values apply to
        operations that start after the commit.
        """
        clean = validate_settings_update(changes)

        row = await self._get_row()
        if row is None:
            try:
                async with self.db.begin_nested():
                    row = WalletSettings(
                        id=SETTINGS_ROW_ID,
                        is_enabled=app_settings.WALLET_DEFAULT_ENABLED,
                        coin_to_currency_ratio=app_settings.WALLET_DEFAULT_COIN_TO_CURRENCY_RATIO,
                        max_redeemable_coins=app_settings.WALLET_DEFAULT_MAX_REDEEMABLE_COINS,
                        coin_expiry_days=app_settings.WALLET_DEFAULT_COIN_EXPIRY_DAYS,
                        first_purchase_coins=app_settings.WALLET_DEFAULT_FIRST_PURCHASE_COINS,
                        min_order_value=app_settings.WALLET_DEFAULT_MIN_ORDER_VALUE,
                    )
                    self.db.add(row)
            except IntegrityError:
                # race condition: שורת ההגדרות נוצרה במקביל
                logger.info("IntegrityError ביצירת הגדרות ארנק: כנראה נוצרו במקביל")
                row = await self._get_row()
                if row is None:
                    raise

        for field, value in clean.items():
            setattr(row, field, value)

        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(row)

        logger.info(
            "Wallet settings updated",
            extra_data={"changed_fields": sorted(clean)},
        )
        return WalletConfig.from_row(row)
