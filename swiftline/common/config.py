"""Central environment-driven settings for the escrow client engine.

Loaded once at import. Every component also accepts explicit overrides in its
constructor, so these values are defaults rather than hard wiring.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "swiftline-client"
    log_level: str = "INFO"
    api_base_url: str = "http://127.0.0.1:8000"
    request_timeout_seconds: float = 10.0
    payment_poll_interval_seconds: float = 3.0
    payment_poll_ceiling_seconds: float = 300.0
    recently_changed_window_seconds: float = 3.0
    credential_store_path: str = ".swiftline/credentials.json"
    otel_exporter_otlp_endpoint: str = "http://localhost:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = ClientSettings()
