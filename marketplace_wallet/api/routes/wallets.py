"""
Wallet API Routes - user facing coin wallet
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_wallet.api.dependencies.admin_auth import require_admin_api_key
from marketplace_wallet.api.routes.schemas import (
    PaginationInfo,
    RedeemRequest,
    RedeemResponse,
    TransactionListResponse,
    TransactionResponse,
    WalletResponse,
    WalletSettingsResponse,
)
from marketplace_wallet.db.database import get_db
from marketplace_wallet.domain.services.ledger_service import LedgerService, TransactionPage
from marketplace_wallet.domain.services.settings_service import WalletConfig, WalletSettingsService
from marketplace_wallet.domain.services.wallet_service import WalletService

router = APIRouter()


def settings_to_response(config: WalletConfig) -> WalletSettingsResponse:
    return WalletSettingsResponse(
        is_enabled=config.is_enabled,
        coin_to_currency_ratio=float(config.coin_to_currency_ratio),
        max_redeemable_coins=config.max_redeemable_coins,
        coin_expiry_days=config.coin_expiry_days,
        first_purchase_coins=config.first_purchase_coins,
        min_order_value=float(config.min_order_value),
        updated_at=config.updated_at,
    )


def page_to_response(page: TransactionPage) -> TransactionListResponse:
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(tx) for tx in page.transactions],
        pagination=PaginationInfo(
            page=page.page,
            limit=page.limit,
            total=page.total,
            pages=page.pages,
        ),
    )


# נתיב קבוע לפני /{user_id} כדי ש-"settings" לא יפורש כמזהה משתמש
@router.get(
    "/settings",
    response_model=WalletSettingsResponse,
    summary="הגדרות תוכנית המטבעות",
    description="יחס המרה, תקרת מימוש ותוקף מטבעות: להצגה בעמוד התשלום.",
)
async def get_wallet_settings(db: AsyncSession = Depends(get_db)):
    """Current coin program settings"""
    config = await WalletSettingsService(db).get_settings()
    return settings_to_response(config)


@router.get(
    "/{user_id}",
    response_model=WalletResponse,
    summary="קבלת ארנק של משתמש",
    description="מחזיר את הארנק של המשתמש, או יוצר חדש עם יתרה אפס אם לא קיים.",
)
async def get_wallet(
    user_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Get wallet for user"""
    service = WalletService(db)
    wallet = await service.get_or_create_wallet(user_id)
    return wallet


@router.get(
    "/{user_id}/transactions",
    response_model=TransactionListResponse,
    summary="היסטוריית תנועות בארנק",
    description="תנועות הארנק מהחדשה לישנה, עם pagination.",
)
async def get_transactions(
    user_id: int,
    page: int = Query(1, description="מספר עמוד, מתחיל ב-1"),
    limit: int = Query(10, description="גודל עמוד, עד 100"),
    db: AsyncSession = Depends(get_db)
):
    """Paginated ledger for user"""
    result = await LedgerService(db).list_transactions(user_id, page=page, limit=limit)
    return page_to_response(result)


@router.post(
    "/{user_id}/redeem",
    response_model=RedeemResponse,
    summary="מימוש מטבעות בהזמנה",
    description=(
        "מוריד מטבעות מהארנק ומחזיר את סכום ההנחה. החלת ההנחה על ההזמנה באחריות הקורא. "
        "נקרא ע\"י מערכת ההזמנות: דורש X-Admin-API-Key."
    ),
)
async def redeem_coins(
    user_id: int,
    data: RedeemRequest,
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db)
):
    """Redeem coins for an order discount"""
    service = WalletService(db)
    result = await service.redeem(
        user_id,
        data.amount,
        reference_type=data.reference_type,
        reference_id=data.reference_id,
        description=data.description,
        order_total=data.order_total,
    )
    return RedeemResponse(
        wallet=WalletResponse.model_validate(result.wallet),
        discount_amount=float(result.discount_amount),
    )
