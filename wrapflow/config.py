import os

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

GWEI = 10**9


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Ensure we pick up legacy environment variable aliases."""

        super().model_post_init(__context)

        if not self.coingecko_api_key:
            fallback = os.getenv("CG_API_KEY") or os.getenv("COINGECKO_KEY")
            if fallback:
                object.__setattr__(self, "coingecko_api_key", fallback)

    log_level: str = Field(default="INFO", description="Logging level")

    # Chain access
    rpc_urls: Dict[int, str] = Field(
        default_factory=lambda: {
            84532: "https://sepolia.base.org",
            11155420: "https://sepolia.optimism.io",
            11155111: "https://rpc.sepolia.org",
        },
        description="JSON-RPC endpoint per network id",
    )
    wallet_rpc_url: str = Field(
        default="",
        description="JSON-RPC endpoint of the signing wallet (eth_accounts / eth_sendTransaction)",
    )
    default_network_id: int = Field(default=84532, description="Network selected when the app starts")
    request_timeout_seconds: int = Field(default=30, description="HTTP request timeout")

    # Price oracle
    enable_coingecko: bool = Field(default=False, description="Use Coingecko for native USD prices")
    coingecko_api_key: str = Field(
        default="",
        description="Coingecko API key",
        validation_alias=AliasChoices("coingecko_api_key", "COINGECKO_API_KEY"),
    )
    mock_native_usd_price: Optional[Decimal] = Field(
        default=Decimal("3200"),
        description="Static native-asset USD price used when no live oracle is enabled",
    )

    # Approval policy
    approval_optimized_percent: int = Field(
        default=150,
        ge=100,
        description="Optimized approval grants this percentage of the required amount",
    )
    approval_large_amount_tokens: int = Field(
        default=10_000,
        ge=0,
        description="Whole-token amount above which an exact approval is recommended",
    )
    approval_high_gas_gwei: int = Field(
        default=50,
        ge=0,
        description="Gas price (gwei) above which an unlimited approval is recommended",
    )
    approval_default_gas: int = Field(default=50_000, description="Fallback gas estimate for approve()")

    # Gas tiers (gwei, upper bounds, exclusive)
    gas_low_below_gwei: int = Field(default=20, description="Gas below this is 'low'")
    gas_normal_below_gwei: int = Field(default=50, description="Gas below this is 'normal'")
    gas_high_below_gwei: int = Field(default=100, description="Gas below this is 'high', otherwise 'extreme'")
    gas_history_size: int = Field(default=20, ge=4, description="Gas samples kept for trend analysis")

    # Fees
    protocol_fee_bps: int = Field(default=30, ge=0, le=10_000, description="Wrap protocol fee in basis points")
    bridge_min_fee_wei: int = Field(default=10**15, ge=0, description="Minimum cross-chain messaging fee (native wei)")

    # Protocol
    redemption_delay_seconds: int = Field(default=10 * 24 * 60 * 60, description="Fixed redemption security delay")
    min_deposit_canonical: int = Field(
        default=1_000,
        ge=0,
        description="Minimum wrap amount expressed in canonical (8-decimal) units",
    )

    # Polling
    allowance_poll_seconds: float = Field(default=5.0, description="Allowance refresh interval")
    gas_price_poll_seconds: float = Field(default=5.0, description="Gas price refresh interval")
    redemption_poll_seconds: float = Field(default=30.0, description="Redemption list refresh interval")

    # Execution
    receipt_timeout_seconds: float = Field(default=300.0, description="Max wait for a transaction receipt")
    receipt_poll_seconds: float = Field(default=2.0, description="Receipt polling interval")
    destination_timeout_seconds: float = Field(
        default=900.0,
        description="Max wait for a bridged amount to arrive on the destination network",
    )
    destination_poll_seconds: float = Field(default=10.0, description="Destination balance polling interval")

    @property
    def has_coingecko_key(self) -> bool:
        return bool(self.coingecko_api_key)

    @property
    def high_gas_wei(self) -> int:
        return self.approval_high_gas_gwei * GWEI

    def rpc_url_for(self, network_id: int) -> Optional[str]:
        return self.rpc_urls.get(network_id)


# Global settings instance
settings = Settings()
