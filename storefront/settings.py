from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Sissan Storefront API"
    db_url: str = "sqlite:///./storefront.db"
    db_echo: bool = False
    log_level: str = "INFO"

    # Login sessions (opaque tokens stored in the session table)
    session_cookie_name: str = "sissan.session_token"
    session_ttl_days: int = 30
    reset_token_ttl_minutes: int = 60
    reset_code_ttl_minutes: int = 15

    # Failsafe account created on first startup
    superadmin_email: str = "superadmin@sissan-sissan.net"
    superadmin_password: str = "superadmin"

    translation_provider: str = "libre"
    translation_api_key: str | None = None
    translation_source_language: str = "fr"
    translation_target_languages: list[str] = ["en", "ar"]
    translation_timeout_seconds: int = 10

    apple_client_id: str | None = None
    apple_app_id: str | None = None
    apple_verify_signature: bool = True

    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_region_name: str | None = None
    s3_bucket_name: str | None = None
    upload_max_bytes: int = 5 * 1024 * 1024

    resend_api_key: str | None = None
    mail_sender: str = "Sissan-Sissan <no-reply@sissan-sissan.net>"
    app_url: str = "http://localhost:3000"

    # Calling codes stripped from internationally written phone numbers
    phone_country_codes: list[str] = ["221", "223", "224", "225", "226", "227", "228", "229"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def secure_session_cookie_name(self) -> str:
        return f"__Secure-{self.session_cookie_name}"


@lru_cache
def get_settings():
    return Settings()
