"""
Domain Services
"""
from marketplace_wallet.domain.services.settings_service import WalletSettingsService, WalletConfig
from marketplace_wallet.domain.services.ledger_service import LedgerService
from marketplace_wallet.domain.services.wallet_service import WalletService, RedemptionResult
from marketplace_wallet.domain.services.expiry_service import ExpiryService

__all__ = [
    "WalletSettingsService",
    "WalletConfig",
    "LedgerService",
    "WalletService",
    "RedemptionResult",
    "ExpiryService",
]
