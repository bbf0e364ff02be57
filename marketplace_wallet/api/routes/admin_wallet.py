"""
Admin Wallet Routes - program settings, manual adjustments, reporting,
and the service-to-service calls made by the order system.

כל ה-endpoints כאן מוגנים ב-X-Admin-API-Key.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_wallet.api.dependencies.admin_auth import require_admin_api_key
from marketplace_wallet.api.routes.schemas import (
    AdjustmentRequest,
    CreditRequest,
    ExpirySweepResponse,
    FirstPurchaseBonusRequest,
    GrantResponse,
    PaginationInfo,
    RefundRequest,
    TransactionListResponse,
    UpdateWalletSettingsRequest,
    WalletListResponse,
    WalletResponse,
    WalletSettingsResponse,
    WalletStatisticsResponse,
)
from marketplace_wallet.api.routes.wallets import page_to_response, settings_to_response
from marketplace_wallet.core.exceptions import WalletNotFoundError
from marketplace_wallet.core.logging import get_logger
from marketplace_wallet.db.database import get_db
from marketplace_wallet.domain.services.expiry_service import ExpiryService
from marketplace_wallet.domain.services.ledger_service import LedgerService
from marketplace_wallet.domain.services.settings_service import WalletSettingsService
from marketplace_wallet.domain.services.wallet_service import WalletService

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_api_key)])


# ==================== הגדרות ====================


@router.put(
    "/settings",
    response_model=WalletSettingsResponse,
    summary="עדכון הגדרות תוכנית המטבעות",
    description="עדכון חלקי: רק שדות שנשלחו משתנים. יוצר את שורת ההגדרות אם אינה קיימת.",
)
async def update_wallet_settings(
    data: UpdateWalletSettingsRequest,
    db: AsyncSession = Depends(get_db),
):
    """Update coin program settings"""
    changes = data.model_dump(exclude_unset=True)
    config = await WalletSettingsService(db).update_settings(changes)
    return settings_to_response(config)


# ==================== פעולות על ארנק ====================


@router.post(
    "/adjust",
    response_model=WalletResponse,
    summary="התאמה ידנית של יתרה",
    description="סכום חיובי מזכה, שלילי מחייב. חיוב לא יכול להוריד את היתרה מתחת לאפס.",
)
async def adjust_wallet(
    data: AdjustmentRequest,
    db: AsyncSession = Depends(get_db),
):
    """Manual balance adjustment"""
    logger.info(
        "Admin wallet adjustment requested",
        extra_data={"user_id": data.user_id, "amount": data.amount},
    )
    wallet = await WalletService(db).adjust(data.user_id, data.amount, data.description)
    return wallet


@router.post(
    "/credit",
    response_model=WalletResponse,
    summary="זיכוי מטבעות",
    description="זיכוי מטבעות שנצברו (למשל מרכישה). המנה פוקעת לפי coin_expiry_days.",
)
async def credit_wallet(
    data: CreditRequest,
    db: AsyncSession = Depends(get_db),
):
    """Credit earned coins"""
    wallet = await WalletService(db).credit(
        data.user_id,
        data.amount,
        data.reference_type,
        reference_id=data.reference_id,
        description=data.description,
    )
    return wallet


@router.post(
    "/first-purchase-bonus",
    response_model=GrantResponse,
    summary="בונוס רכישה ראשונה",
    description="מזכה את בונוס הרכישה הראשונה פעם אחת לכל ארנק. קריאה חוזרת מחזירה granted=false.",
)
async def grant_first_purchase_bonus(
    data: FirstPurchaseBonusRequest,
    db: AsyncSession = Depends(get_db),
):
    """Grant the one-time first purchase bonus"""
    wallet = await WalletService(db).grant_first_purchase_bonus(data.user_id, data.order_id)
    if wallet is None:
        return GrantResponse(granted=False)
    return GrantResponse(granted=True, wallet=WalletResponse.model_validate(wallet))


@router.post(
    "/refund",
    response_model=GrantResponse,
    summary="החזר מטבעות בביטול הזמנה",
    description="מחזיר מטבעות שמומשו בהזמנה שבוטלה. פעם אחת לכל הזמנה.",
)
async def refund_redemption(
    data: RefundRequest,
    db: AsyncSession = Depends(get_db),
):
    """Refund coins redeemed on a cancelled order"""
    wallet = await WalletService(db).refund_redemption(
        data.user_id,
        data.order_id,
        data.amount,
        description=data.description,
    )
    if wallet is None:
        return GrantResponse(granted=False)
    return GrantResponse(granted=True, wallet=WalletResponse.model_validate(wallet))


@router.post(
    "/expire",
    response_model=ExpirySweepResponse,
    summary="הרצת פקיעת מטבעות ידנית",
    description="מריץ את אותה פקיעה שרצה יומית ב-Celery beat. בטוח להרצה חוזרת.",
)
async def run_expiry_sweep(db: AsyncSession = Depends(get_db)):
    """Run the expiry sweep now"""
    coins_expired = await ExpiryService(db).process_expired_coins()
    return ExpirySweepResponse(success=True, expired_coins_count=coins_expired)


# ==================== דוחות ====================


@router.get(
    "/statistics",
    response_model=WalletStatisticsResponse,
    summary="סטטיסטיקות תוכנית המטבעות",
    description="סך מטבעות שהונפקו, מומשו ופקעו, יתרה פתוחה ומספר ארנקים.",
)
async def get_statistics(db: AsyncSession = Depends(get_db)):
    """Program-wide aggregates"""
    stats = await LedgerService(db).get_statistics()
    return WalletStatisticsResponse.model_validate(stats)


@router.get(
    "/users",
    response_model=WalletListResponse,
    summary="רשימת ארנקים",
    description="כל הארנקים, מהפעיל לאחרונה, עם pagination.",
)
async def list_wallets(
    page: int = Query(1, description="מספר עמוד, מתחיל ב-1"),
    limit: int = Query(20, description="גודל עמוד, עד 100"),
    db: AsyncSession = Depends(get_db),
):
    """List wallets"""
    result = await LedgerService(db).list_wallets(page=page, limit=limit)
    return WalletListResponse(
        wallets=[WalletResponse.model_validate(w) for w in result.wallets],
        pagination=PaginationInfo(
            page=result.page,
            limit=result.limit,
            total=result.total,
            pages=result.pages,
        ),
    )


@router.get(
    "/users/{user_id}",
    response_model=WalletResponse,
    summary="ארנק של משתמש",
    description="קריאה בלבד: לא יוצר ארנק. 404 אם למשתמש אין ארנק.",
)
async def get_user_wallet(
    user_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a user's wallet without creating it"""
    wallet = await WalletService(db).get_wallet(user_id)
    if wallet is None:
        raise WalletNotFoundError(user_id)
    return wallet


@router.get(
    "/users/{user_id}/transactions",
    response_model=TransactionListResponse,
    summary="תנועות ארנק של משתמש",
)
async def get_user_transactions(
    user_id: int,
    page: int = Query(1),
    limit: int = Query(10),
    db: AsyncSession = Depends(get_db),
):
    """Paginated ledger for a user"""
    result = await LedgerService(db).list_transactions(user_id, page=page, limit=limit)
    return page_to_response(result)
