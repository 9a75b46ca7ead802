"""
Application configuration.

Values are read from the environment (or a local ``.env`` file) so that
tax constants and ledger defaults can be changed without a code release.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PAYROLL_ACCOUNT_CODES: Dict[str, List[str]] = {
    "payroll_expense": ["6200", "6100", "5200"],
    "taxes_payable": ["2100", "2110", "2200"],
    "deductions_payable": ["2150", "2160", "2200"],
    "net_pay_payable": ["2010", "2100", "2000"],
}


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./ledgerpay.db", description="SQLAlchemy database URL"
    )
    log_sql_queries: bool = False
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # Runtime
    environment: str = "development"
    log_level: str = "INFO"

    # Federal payroll tax constants (2024 tax year)
    tax_year: int = 2024
    social_security_rate: Decimal = Decimal("0.062")
    social_security_wage_base: Decimal = Decimal("168600")
    medicare_rate: Decimal = Decimal("0.0145")
    additional_medicare_rate: Decimal = Decimal("0.009")
    additional_medicare_threshold: Decimal = Decimal("200000")
    futa_rate: Decimal = Decimal("0.006")
    futa_wage_base: Decimal = Decimal("7000")

    # Flat state withholding applied when the employee has no own rate
    default_state_withholding_rate: Decimal = Field(
        default=Decimal("0"),
        description="Fraction of gross withheld for state income tax",
    )

    # Payroll calculation
    default_standard_hours_per_week: Decimal = Decimal("40")
    large_change_threshold: Decimal = Field(
        default=Decimal("0.25"),
        description="Relative gross change versus the last posted run that is flagged",
    )

    # General ledger
    journal_balance_tolerance: Decimal = Decimal("0.01")
    payroll_default_account_codes: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_PAYROLL_ACCOUNT_CODES.items()}
    )

    # Optional fixed tenant for single-tenant deployments
    default_tenant_id: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="LEDGERPAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment."""
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
