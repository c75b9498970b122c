from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for messaging writes that bypass RLS

    # Session
    session_cookie_name: str = "sb-access-token"
    chapter_scope_cookie_name: str = "chapter_scope"
    chapter_scope_cookie_path: str = "/"
    chapter_scope_cookie_max_age: int = 60 * 60 * 24 * 365

    # Messaging
    messages_page_size: int = 50
    messages_max_page_size: int = 100
    push_preview_length: int = 100

    # Web push (VAPID)
    vapid_public_key: Optional[str] = None
    vapid_private_key: Optional[str] = None
    vapid_subject: str = "mailto:admin@votelabor.org"

    # Resend
    resend_api_key: Optional[str] = None
    resend_from_email: str = "noreply@mail.votelabor.org"
    email_default_sender_name: str = "Labor Party"
    email_batch_size: int = 100
    email_send_delay_seconds: float = 0.6

    # App
    app_name: str = "chapterhub-backend"
    app_url: str = "https://members.votelabor.org"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Rate limits (slowapi format, e.g. "100/minute")
    rate_limit_storage_uri: str = "memory://"  # e.g. redis://host:6379 to share across instances
    message_send_rate_limit: str = "30/minute"
    email_send_rate_limit: str = "10/hour"
    email_test_rate_limit: str = "20/hour"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
