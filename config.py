import os
from pydantic_settings import BaseSettings
from pydantic import model_validator, field_validator
from typing import Optional

BASE_DIR = os.path.abspath(os.path.dirname(__file__))
DEFAULT_DB_URI = f'sqlite:///{os.path.join(BASE_DIR, "poslicense.db")}'


class Config(BaseSettings):
    # Security configuration
    SECRET_KEY: str

    # Database
    DATABASE_URL: str = DEFAULT_DB_URI
    SQLALCHEMY_DATABASE_URI: Optional[str] = None
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_ENGINE_OPTIONS: dict = {}

    @model_validator(mode='after')
    def set_database_config(self) -> 'Config':
        """Set SQLALCHEMY_DATABASE_URI from DATABASE_URL and configure engine options"""
        url = self.DATABASE_URL
        # SQLAlchemy expects postgresql:// not postgres://
        if url.startswith('postgres://'):
            url = url.replace('postgres://', 'postgresql://', 1)
        self.SQLALCHEMY_DATABASE_URI = url

        if url.startswith('postgresql') or 'mysql' in url or 'mariadb' in url:
            self.SQLALCHEMY_ENGINE_OPTIONS = {
                'pool_size': 10,
                'pool_recycle': 3600,
                'pool_pre_ping': True,
                'max_overflow': 20,
            }

        return self

    # License keys
    # Upper bound for the retry-until-unique loop when issuing new keys.
    KEY_GENERATION_MAX_ATTEMPTS: int = 100
    # Upper bound for licenses generated from a template in one request.
    BULK_GENERATE_MAX: int = 50

    # Audit log: JSON lines, rotated daily. None disables file output.
    AUDIT_LOG_DIR: Optional[str] = os.path.join(BASE_DIR, 'logs')
    AUDIT_LOG_BACKUP_DAYS: int = 30

    LOG_LEVEL: str = 'INFO'

    @field_validator('LOG_LEVEL', mode='before')
    def _normalize_log_level(cls, v):
        """Accept 'debug', ' Info ' etc. from .env files."""
        if v is None:
            return 'INFO'
        return str(v).strip().upper() or 'INFO'

    # Periodic expiry sweep (APScheduler). Off by default so that several
    # worker processes do not each start their own scheduler.
    SCHEDULER_ENABLED: bool = False
    EXPIRY_SWEEP_HOURS: int = 6

    # Application environment: development | staging | production
    APP_ENV: str = os.getenv('FLASK_ENV', 'development')

    class Config:
        env_file = '.env'
        env_file_encoding = 'utf-8'
        case_sensitive = False
        extra = 'ignore'  # Ignore extra fields from .env
