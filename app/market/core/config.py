# app/market/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 세션 쿠키 서명용 키 (운영환경에서는 .env 로 관리)
    SECRET_KEY: str = "change-this-secret-in-env"

    # 환경
    ENV: str = "local"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Postgres URL (.env 에서 읽어올 값). 로컬/테스트는 sqlite+aiosqlite 도 가능
    DATABASE_URL: str

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cloudflare R2 (S3 호환)
    CF_R2_ACCOUNT_ID: str = ""
    CF_R2_ACCESS_KEY_ID: str = ""
    CF_R2_SECRET_ACCESS_KEY: str = ""
    CF_R2_BUCKET_NAME: str = "designs"
    CF_R2_PUBLIC_BASE_URL: str = ""   # CDN/도메인 붙였으면
    CF_R2_ENDPOINT_URL: str = ""      # 비워두면 account id 로 만든다

    # 외부 I/O (DB 조회, R2) 기본 타임아웃
    REQUEST_TIMEOUT_SECONDS: float = 5.0
    # link 모드 다운로드 URL 유효시간
    DOWNLOAD_LINK_TTL_SECONDS: int = 300

    # Stripe webhook
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300


settings = Settings()
