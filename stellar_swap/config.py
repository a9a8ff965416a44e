from decimal import Decimal
from pathlib import Path
from typing import Any, Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


NETWORKS: Dict[str, Dict[str, str]] = {
    "TESTNET": {
        "passphrase": "Test SDF Network ; September 2015",
        "horizon_url": "https://horizon-testnet.stellar.org",
        "soroban_rpc_url": "https://soroban-testnet.stellar.org",
    },
    "PUBLIC": {
        "passphrase": "Public Global Stellar Network ; September 2015",
        "horizon_url": "https://horizon.stellar.org",
        "soroban_rpc_url": "https://soroban-rpc.mainnet.stellar.gateway.fm",
    },
    "FUTURENET": {
        "passphrase": "Test SDF Future Network ; October 2022",
        "horizon_url": "https://horizon-futurenet.stellar.org",
        "soroban_rpc_url": "https://rpc-futurenet.stellar.org",
    },
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Fill gateway URLs from the selected network when left blank."""

        super().model_post_init(__context)

        network = NETWORKS.get(self.network.upper(), NETWORKS["TESTNET"])
        if not self.horizon_url:
            object.__setattr__(self, "horizon_url", network["horizon_url"])
        if not self.soroban_rpc_url:
            object.__setattr__(self, "soroban_rpc_url", network["soroban_rpc_url"])

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="auto", description="Log output: json, console or auto (console at DEBUG)")

    # Network
    network: str = Field(default="TESTNET", description="Stellar network: TESTNET, PUBLIC or FUTURENET")
    horizon_url: str = Field(default="", description="Horizon base URL (defaults per network)")
    soroban_rpc_url: str = Field(default="", description="Soroban RPC URL (defaults per network)")
    request_timeout_seconds: int = Field(default=30, description="Gateway request timeout")

    # Contracts
    swap_contract_id: str = Field(default="", description="Constant-product pool contract id")
    token_a_contract_id: str = Field(default="", description="Pool token A contract id")
    token_b_contract_id: str = Field(default="", description="Pool token B contract id")
    read_source_account: str = Field(
        default="",
        description="Funded account used as source when simulating read-only contract calls",
    )

    # Transactions
    base_fee: int = Field(default=100, description="Base fee per operation in stroops")
    tx_timeout_seconds: int = Field(default=180, description="Envelope validity window")
    poll_max_attempts: int = Field(default=30, description="Confirmation poll attempts")
    poll_interval_seconds: float = Field(default=2.0, description="Seconds between confirmation polls")
    native_reserve_buffer: Decimal = Field(
        default=Decimal("1"),
        description="XLM kept back from native sends to cover fees and reserves",
    )
    default_slippage_percent: float = Field(default=0.5, description="Swap slippage when none is given")
    transaction_log_capacity: int = Field(default=50, description="Transactions kept in the log")
    signer_secret: str = Field(
        default="",
        description="Secret key for a server-side signer (scripts and test accounts only)",
    )

    # Cache Settings
    cache_ttl_seconds: float = Field(default=30.0, description="Default cache TTL in seconds")
    balance_cache_ttl_seconds: float = Field(default=15.0, description="TTL for account balances")
    pool_cache_ttl_seconds: float = Field(default=10.0, description="TTL for pool reserves and shares")
    quote_cache_ttl_seconds: float = Field(default=5.0, description="TTL for swap quotes")
    metadata_cache_ttl_seconds: float = Field(default=300.0, description="TTL for token metadata")
    cache_sweep_interval_seconds: float = Field(
        default=60.0,
        description="How often expired cache entries are swept",
    )

    # Event feed
    event_poll_interval_seconds: float = Field(default=8.0, description="Contract event poll interval")
    event_lookback_ledgers: int = Field(default=100, description="Ledgers scanned on the first event poll")
    event_feed_limit: int = Field(default=50, description="Events kept by the feed")

    @property
    def network_passphrase(self) -> str:
        return NETWORKS.get(self.network.upper(), NETWORKS["TESTNET"])["passphrase"]


settings = Settings()
