"""
Configuration Management for Gestor de Abonos

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The pricing and ledger functions never read settings themselves; the
orchestration layer reads them and passes plain values down.
"""

from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gestor.pricing.escalation import DEFAULT_MONTHLY_IPC_RATES as DEFAULT_RATE_TABLE


DEFAULT_MONTHLY_IPC_RATES = ",".join(str(rate) for rate in DEFAULT_RATE_TABLE)


class SupabaseSettings(BaseSettings):
    """Hosted Postgres (Supabase) connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Supabase project URL"
    )
    key: str = Field(
        ...,
        description="Anon key; requests go through row-level security"
    )
    service_key: Optional[str] = Field(
        default=None,
        description="Service key for admin jobs (bypasses row-level security)"
    )

    # Table names
    clients_table: str = "clients"
    occasional_clients_table: str = "occasional_clients"
    adjustments_table: str = "value_adjustments"
    movements_table: str = "account_movements"
    invoices_table: str = "invoices"
    invoice_items_table: str = "invoice_items"
    audit_table: str = "audit_events"

    adjustment_rpc: str = Field(
        default="apply_price_adjustment",
        description="Postgres function that writes client price + record in one transaction"
    )


class PricingSettings(BaseSettings):
    """Subscription escalation and invoicing defaults."""

    model_config = SettingsConfigDict(
        env_prefix="PRICING_",
        extra="ignore"
    )

    monthly_ipc_rates: str = Field(
        default=DEFAULT_MONTHLY_IPC_RATES,
        description="Comma-separated suggested IPC % for January..December"
    )
    default_iva_percentage: Decimal = Field(
        default=Decimal("21"),
        ge=0,
        description="IVA applied to new invoices"
    )
    money_places: int = Field(
        default=2,
        ge=0,
        le=6,
        description="Decimal places subscription values are rounded to"
    )

    @field_validator("monthly_ipc_rates")
    @classmethod
    def validate_monthly_rates(cls, v: str) -> str:
        parts = [p.strip() for p in v.split(",") if p.strip()]
        if len(parts) != 12:
            raise ValueError(f"Expected 12 monthly rates, got {len(parts)}")
        for part in parts:
            try:
                rate = Decimal(part)
            except InvalidOperation:
                raise ValueError(f"Not a number: {part!r}") from None
            if rate < 0:
                raise ValueError(f"Monthly rate cannot be negative: {part}")
        return v

    @property
    def monthly_rates_list(self) -> list[Decimal]:
        """Suggested rates as a 12-entry list (index 0 = January)."""
        return [Decimal(p.strip()) for p in self.monthly_ipc_rates.split(",") if p.strip()]


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Loaded lazily so the core works without Supabase credentials

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def pricing(self) -> PricingSettings:
        return PricingSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("supabase", "pricing", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
