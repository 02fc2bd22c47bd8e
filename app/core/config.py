from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("text", alias="LOG_FORMAT")  # text | json

    # Email transport: smtp (Gmail/Brevo/custom relay), resend, or log
    email_backend: str = Field("log", alias="EMAIL_BACKEND")
    smtp_host: str = Field("smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(587, alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(None, alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(None, alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(True, alias="SMTP_USE_TLS")
    email_from: Optional[str] = Field(None, alias="EMAIL_FROM")
    email_from_name: str = Field("Acadence LMS", alias="EMAIL_FROM_NAME")
    resend_api_key: Optional[str] = Field(None, alias="RESEND_API_KEY")
    email_send_delay_seconds: float = Field(0.1, alias="EMAIL_SEND_DELAY_SECONDS")
    email_max_retries: int = Field(3, alias="EMAIL_MAX_RETRIES")

    # Google Classroom OAuth
    google_client_id: Optional[str] = Field(None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: Optional[str] = Field(None, alias="GOOGLE_CLIENT_SECRET")
    google_redirect_uri: Optional[str] = Field(None, alias="GOOGLE_REDIRECT_URI")
    http_timeout_seconds: float = Field(30.0, alias="HTTP_TIMEOUT_SECONDS")
    oauth_state_max_age_seconds: int = Field(600, alias="OAUTH_STATE_MAX_AGE_SECONDS")

    frontend_url: str = Field("http://localhost:5173", alias="FRONTEND_URL")

    # Weekly attendance campaign (Monday 08:00 IST by default)
    weekly_campaign_timezone: str = Field("Asia/Kolkata", alias="WEEKLY_CAMPAIGN_TIMEZONE")
    weekly_campaign_day: str = Field("mon", alias="WEEKLY_CAMPAIGN_DAY")
    weekly_campaign_hour: int = Field(8, alias="WEEKLY_CAMPAIGN_HOUR")
    weekly_campaign_student_delay_seconds: float = Field(1.0, alias="WEEKLY_CAMPAIGN_STUDENT_DELAY_SECONDS")
    weekly_campaign_force_send: bool = Field(False, alias="WEEKLY_CAMPAIGN_FORCE_SEND")
    weekly_campaign_test_recipients: List[str] = Field(default_factory=list, alias="WEEKLY_CAMPAIGN_TEST_RECIPIENTS")
    weekly_campaign_max_emails: Optional[int] = Field(None, alias="WEEKLY_CAMPAIGN_MAX_EMAILS")

    # Google Classroom background sync
    sync_interval_hours: int = Field(3, alias="SYNC_INTERVAL_HOURS")
    sync_integration_delay_seconds: float = Field(0.5, alias="SYNC_INTEGRATION_DELAY_SECONDS")
    sync_log_stale_minutes: int = Field(30, alias="SYNC_LOG_STALE_MINUTES")

    notification_dedupe_hours: int = Field(24, alias="NOTIFICATION_DEDUPE_HOURS")
    scheduler_enabled: bool = Field(True, alias="SCHEDULER_ENABLED")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
