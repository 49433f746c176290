"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./offramp_engine.db"
    log_level: str = "INFO"

    # Settlement provider (Paycrest)
    paycrest_api_url: str = "https://api.paycrest.io"
    paycrest_api_key: str = ""
    paycrest_api_secret: str = ""
    http_timeout_seconds: float = 10.0
    default_network: str = "base"

    # Mock provider for local development
    use_mock_provider: bool = False
    mock_failure_rate: float = 0.05  # 5% simulated failure rate
    mock_latency_ms: int = 100  # Simulated provider latency

    # Polling
    rate_refresh_interval_seconds: float = 30.0
    order_poll_interval_seconds: float = 5.0
    order_timeout_seconds: float = 1800.0  # 30 minutes before an order expires

    # Retry / backoff
    retry_max_attempts: int = 5
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0

    # Fee schedule
    sender_fee_percent: str = "0.5"
    transaction_fees: dict[str, str] = {"USDC": "0.1", "USDT": "0.1"}
    default_transaction_fee: str = "0.1"

    reference_prefix: str = "nedapay"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
