"""Configuration module for the Cotizador application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'cotizador')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'cotizador')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'cotizador')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'

    # Edit locks (seconds)
    LOCK_TTL_SECONDS = int(os.getenv('LOCK_TTL_SECONDS', '300'))
    LOCK_RENEWAL_SECONDS = int(os.getenv('LOCK_RENEWAL_SECONDS', '120'))
    LOCK_CHECK_SECONDS = int(os.getenv('LOCK_CHECK_SECONDS', '30'))

    # Autosave (seconds)
    AUTOSAVE_DEBOUNCE_SECONDS = float(os.getenv('AUTOSAVE_DEBOUNCE_SECONDS', '5'))
    AUTOSAVE_SETTLE_SECONDS = float(os.getenv('AUTOSAVE_SETTLE_SECONDS', '3'))

    # Quotes
    DEFAULT_TAX_RATE = os.getenv('DEFAULT_TAX_RATE', '21')
    QUOTE_VALID_DAYS = int(os.getenv('QUOTE_VALID_DAYS', '15'))

    # Business Information (for quote PDFs)
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'Mi Empresa')
    BUSINESS_ADDRESS = os.getenv('BUSINESS_ADDRESS', '')
    BUSINESS_PHONE = os.getenv('BUSINESS_PHONE', '')
    BUSINESS_EMAIL = os.getenv('BUSINESS_EMAIL', '')

    # Tango ERP (order creation)
    TANGO_API_URL = os.getenv('TANGO_API_URL', 'http://localhost:17000/api')
    TANGO_API_TOKEN = os.getenv('TANGO_API_TOKEN')
    TANGO_TIMEOUT = int(os.getenv('TANGO_TIMEOUT', '10'))

    # Client side: where QuoteEditor finds this API
    COTIZADOR_API_URL = os.getenv('COTIZADOR_API_URL', 'http://localhost:5000/api')
    COTIZADOR_API_TIMEOUT = int(os.getenv('COTIZADOR_API_TIMEOUT', '10'))
