"""
Database Models
"""
from marketplace_wallet.db.models.wallet_settings import WalletSettings
from marketplace_wallet.db.models.wallet import Wallet
from marketplace_wallet.db.models.wallet_transaction import (
    WalletTransaction,
    WalletTransactionType,
    ReferenceType,
)

__all__ = [
    "WalletSettings",
    "Wallet",
    "WalletTransaction",
    "WalletTransactionType",
    "ReferenceType",
]
