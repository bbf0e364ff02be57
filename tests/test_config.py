"""
בדיקות להגדרות האפליקציה: marketplace_wallet/core/config.py
"""
from decimal import Decimal

import pytest
from pydantic import ValidationError

from marketplace_wallet.core.config import Settings


class TestDatabaseUrl:

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("postgres://u:p@db:5432/shop", "postgresql+asyncpg://u:p@db:5432/shop"),
            ("postgresql://u:p@db:5432/shop", "postgresql+asyncpg://u:p@db:5432/shop"),
            ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
        ],
    )
    def test_database_url_normalised(self, raw, expected):
        assert Settings(DATABASE_URL=raw, ADMIN_API_KEY="k").DATABASE_URL == expected


class TestWalletDefaults:

    @pytest.mark.unit
    def test_defaults(self):
        s = Settings(ADMIN_API_KEY="k")

        assert s.WALLET_DEFAULT_COIN_TO_CURRENCY_RATIO == Decimal("0.10")
        assert s.WALLET_DEFAULT_MAX_REDEEMABLE_COINS == 500
        assert s.WALLET_DEFAULT_COIN_EXPIRY_DAYS == 90
        assert s.WALLET_DEFAULT_FIRST_PURCHASE_COINS == 50
        assert s.WALLET_EXPIRY_SWEEP_INTERVAL_SECONDS == 86400.0

    @pytest.mark.unit
    def test_ratio_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(ADMIN_API_KEY="k", WALLET_DEFAULT_COIN_TO_CURRENCY_RATIO=Decimal("0"))

    @pytest.mark.unit
    def test_negative_default_rejected(self):
        with pytest.raises(ValidationError):
            Settings(ADMIN_API_KEY="k", WALLET_DEFAULT_COIN_EXPIRY_DAYS=-1)

    @pytest.mark.unit
    def test_page_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(ADMIN_API_KEY="k", WALLET_MAX_PAGE_SIZE=0)


class TestProductionWarnings:

    @pytest.mark.unit
    def test_missing_admin_key_warns(self):
        with pytest.warns(UserWarning, match="ADMIN_API_KEY"):
            Settings(ADMIN_API_KEY="", DEBUG=False)
