"""Application configuration using Pydantic Settings."""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PLACEHOLDER_SECRETS = ("change-me-in-production", "change-me-refresh-secret", "")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Okul SMS"
    api_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:5173"

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "okul_sms"

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_refresh_secret_key: str = "change-me-refresh-secret"
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "okul-sms"
    jwt_audience: str = "okul-sms-users"
    jwt_access_token_expire_minutes: int = 15
    jwt_refresh_token_expire_days: int = 7
    bcrypt_rounds: int = 12

    # Redis response cache
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    cache_default_ttl: int = 300

    # SMTP
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "Okul SMS <no-reply@okul.edu.tr>"
    smtp_use_tls: bool = True

    # Rate limiting (per client IP)
    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 900
    rate_limit_max_requests: int = 500
    auth_rate_limit_window_seconds: int = 300
    auth_rate_limit_max_requests: int = 5
    # Proxy addresses (comma-separated) whose X-Forwarded-For header is believed
    trusted_proxies: str = ""

    # Uploads
    max_request_size: int = 10 * 1024 * 1024
    max_upload_size: int = 10 * 1024 * 1024
    allowed_upload_extensions: str = "pdf,doc,docx,xls,xlsx,jpg,jpeg,png"
    upload_dir: str = "uploads"

    # AWS S3 (optional; local upload_dir is used when no bucket is set)
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "eu-central-1"
    s3_bucket_uploads: str = ""

    # Seed
    seed_admin_username: str = "admin"
    seed_admin_password: str = "Admin123!"
    seed_admin_full_name: str = "Sistem Yöneticisi"

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:5173"

    @property
    def upload_extensions(self) -> set[str]:
        return {e.strip().lower().lstrip(".") for e in self.allowed_upload_extensions.split(",") if e.strip()}

    @property
    def trusted_proxy_ips(self) -> set[str]:
        return {p.strip() for p in self.trusted_proxies.split(",") if p.strip()}

    @model_validator(mode="after")
    def _validate_secrets(self):
        if not 10 <= self.bcrypt_rounds <= 15:
            raise ValueError("BCRYPT_ROUNDS must be between 10 and 15")
        if not self.debug:
            for name in ("jwt_secret_key", "jwt_refresh_secret_key"):
                value = getattr(self, name)
                if value in _PLACEHOLDER_SECRETS or len(value) < 32:
                    raise ValueError(
                        f"{name.upper()} must be set to a secret of at least 32 characters when DEBUG is not enabled. "
                        "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                    )
            if self.jwt_secret_key == self.jwt_refresh_secret_key:
                raise ValueError("JWT_SECRET_KEY and JWT_REFRESH_SECRET_KEY must differ")
        return self


settings = Settings()
