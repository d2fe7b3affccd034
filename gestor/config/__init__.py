"""Configuration package."""

from gestor.config.settings import (
    DEFAULT_MONTHLY_IPC_RATES,
    AppSettings,
    PricingSettings,
    Settings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DEFAULT_MONTHLY_IPC_RATES",
    "AppSettings",
    "PricingSettings",
    "Settings",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
