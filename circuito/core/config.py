from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator


class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'circuito_user'
    POSTGRES_PASSWORD: str = 'circuito_pass'
    POSTGRES_DB: str = 'circuito_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Override completo (tests, sqlite local)

    # Redis settings (broker de Celery)
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'

    # Email settings
    EMAIL_ENABLED: bool = False
    EMAIL_SMTP_SERVER: str = 'smtp.gmail.com'
    EMAIL_SMTP_PORT: int = 587
    EMAIL_USE_TLS: bool = True
    EMAIL_USERNAME: str = ''
    EMAIL_PASSWORD: str = ''
    EMAIL_FROM: str = ''
    EMAIL_FROM_NAME: str = 'Circuito Ventas'
    FRONTEND_URL: str = 'http://localhost:3000'

    # Colppy (sistema contable externo)
    COLPPY_ENABLED: bool = False
    COLPPY_API_URL: str = 'https://login.colppy.com/lib/frontera2/service.php'
    COLPPY_USERNAME: str = ''
    COLPPY_PASSWORD: str = ''
    COLPPY_COMPANY_ID: str = ''
    COLPPY_TIMEOUT_SECONDS: int = 30

    # BCRA Central de Deudores (solo consulta informativa)
    BCRA_API_URL: str = 'https://api.bcra.gob.ar/centraldedeudores/v1.0'
    BCRA_TIMEOUT_SECONDS: int = 15

    # Reglas de negocio
    BALANCE_EPSILON: Decimal = Decimal('0.01')
    PERSISTED_AMOUNT_TOLERANCE: Decimal = Decimal('0.02')
    DEFAULT_POINT_OF_SALE: str = '0001'
    DELIVERY_NOTE_PREFIX: str = 'RE 0002'
    INVOICE_TAX_RATE: Decimal = Decimal('0.21')
    INVOICE_DUE_DAYS: int = 30

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator(
        "DEBUG", "EMAIL_ENABLED", "EMAIL_USE_TLS", "COLPPY_ENABLED", "CELERY_TASK_ALWAYS_EAGER",
        mode="before"
    )
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)


settings = Settings()
