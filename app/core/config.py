from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    app_env: str = "dev"
    database_url: str

    # Telegram (inbound webhook + outbound notifier)
    telegram_bot_token: str | None = None
    telegram_webhook_secret: str | None = None  # Checked against X-Telegram-Bot-Api-Secret-Token
    telegram_dry_run: bool = True  # Set to False in production to enable real sending

    # Remote queue (SQS-compatible query protocol, signed requests)
    aws_region: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    sqs_queue_url: str | None = None
    sqs_visibility_timeout: int = 30  # Seconds a received job stays hidden
    queue_max_messages: int = 10  # Provider limit is 10
    queue_wait_seconds: int = 10  # Long-poll wait, provider limit is 20

    # Booking flow
    reminder_lookahead_minutes: int = 60  # Reminder is sent once start is this close
    date_options_limit: int = 5  # Distinct dates offered per service
    display_timezone: str = "Asia/Kolkata"  # Presentation only; storage is UTC

    admin_api_key: str | None = (
        None  # Optional - if not set, admin endpoints are unprotected (dev mode)
    )

    @property
    def queue_configured(self) -> bool:
        """True when every value needed to sign and address queue requests is present."""
        return bool(
            self.sqs_queue_url
            and self.aws_region
            and self.aws_access_key_id
            and self.aws_secret_access_key
        )


# Settings will load from environment variables or .env file
# Required fields will raise ValidationError if missing (fail-fast)
settings = Settings()
