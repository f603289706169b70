from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url

# schemes hosting providers hand out; all served through asyncpg
POSTGRES_SCHEMES = {"postgres", "postgresql", "postgresql+psycopg2", "postgresql+psycopg"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True)

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # Full URL wins over the PG_* pieces
    DATABASE_URL: str | None = None
    PG_HOST: str | None = None
    PG_PORT: int = 5432
    PG_DB: str | None = None
    PG_USER: str | None = None
    PG_PASSWORD: str | None = None
    PG_SSLMODE: str | None = None  # disable / prefer / require / verify-ca / verify-full

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 0
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_CONNECT_TIMEOUT_SECONDS: int = 10
    DB_STATEMENT_TIMEOUT_SECONDS: int = 30
    DB_INIT_ON_STARTUP: bool = True

    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_TLS: bool = True
    SMTP_SSL: bool = False
    MAIL_FROM: str | None = None
    SMTP_TIMEOUT_SECONDS: int = 10

    APP_BASE_URL: str | None = None
    VERIFY_LINK_PATH: str = "/api/auth/verify"
    VERIFY_LANDING_PATH: str = "/auth.html?mode=login"

    EMAIL_VERIFICATION_ENABLED: bool = True
    EMAIL_VERIFY_TTL_MINUTES: int = 60

    BCRYPT_ROUNDS: int = 10

    CORS_ORIGINS: str = "*"

    @property
    def database_url(self) -> str | None:
        if self.DATABASE_URL:
            url = make_url(self.DATABASE_URL)
            if url.drivername in POSTGRES_SCHEMES:
                url = url.set(drivername="postgresql+asyncpg")
            if url.drivername == "postgresql+asyncpg":
                # asyncpg takes TLS through connect_args, see database_sslmode
                url = url.difference_update_query(["sslmode"])
            return url.render_as_string(hide_password=False)
        if not (self.PG_HOST and self.PG_DB and self.PG_USER):
            return None
        return URL.create(
            "postgresql+asyncpg",
            username=self.PG_USER,
            password=self.PG_PASSWORD,
            host=self.PG_HOST,
            port=self.PG_PORT,
            database=self.PG_DB,
        ).render_as_string(hide_password=False)

    @property
    def database_sslmode(self) -> str | None:
        if self.DATABASE_URL:
            mode = make_url(self.DATABASE_URL).query.get("sslmode")
            if mode:
                return mode
        return self.PG_SSLMODE

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASSWORD and self.MAIL_FROM)

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
