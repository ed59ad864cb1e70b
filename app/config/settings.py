from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "verifier"
    db_username: str = "verifier"
    db_password: str = "secret"

    max_job_attempts: int = 3
    job_poll_interval_seconds: int = 5

    api_host: str = "0.0.0.0"
    api_port: int = 8080
    public_origin: str = "http://localhost:3000"

    price_per_unit_cents: int = 100
    default_currency: str = "USD"

    demo_account_emails: str = "demo@deepverify.app"
    demo_token_floor: int = 300

    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"
    paystack_timeout_seconds: int = 15
    paystack_signature_header: str = "x-paystack-signature"

    payment_poll_max_attempts: int = 20
    payment_poll_interval_seconds: int = 3

    detection_provider: str = "realitydefender"
    detection_api_key: str = ""
    detection_base_url: str = "https://api.prd.realitydefender.xyz"
    detection_timeout_seconds: int = 30
    detection_poll_attempts: int = 10
    detection_poll_interval_seconds: int = 3

    max_image_bytes: int = 10 * 1024 * 1024
    max_video_bytes: int = 50 * 1024 * 1024
    upload_retention_hours: int = 24

    @property
    def demo_emails(self) -> frozenset[str]:
        """Normalized demo allow-list."""
        return frozenset(
            email.strip().lower()
            for email in self.demo_account_emails.split(",")
            if email.strip()
        )
