"""
API Routes
"""
from fastapi import APIRouter

from marketplace_wallet.api.routes.wallets import router as wallets_router
from marketplace_wallet.api.routes.admin_wallet import router as admin_wallet_router

router = APIRouter()

router.include_router(wallets_router, prefix="/wallets", tags=["Wallets"])
router.include_router(admin_wallet_router, prefix="/admin/wallet", tags=["Admin Wallet"])
