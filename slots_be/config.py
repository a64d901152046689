"""
Configuration module with fail-fast validation.

Values are read from the environment (and a local .env file) once, validated
by ConfigValidator and exposed as class attributes for app.config.from_object.
"""
from dotenv import load_dotenv

load_dotenv()

from slots_be.config_validator import validate_production_config

class Config:
    """Production-ready configuration with fail-fast validation."""

    _validated_config = validate_production_config()

    # Database
    SQLALCHEMY_DATABASE_URI = _validated_config['SQLALCHEMY_DATABASE_URI']
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JWT
    JWT_SECRET_KEY = _validated_config['JWT_SECRET_KEY']
    JWT_ACCESS_TOKEN_EXPIRES = _validated_config['JWT_ACCESS_TOKEN_EXPIRES']
    JWT_TOKEN_LOCATION = ['headers', 'cookies']
    JWT_COOKIE_SECURE = _validated_config['JWT_COOKIE_SECURE']
    JWT_COOKIE_SAMESITE = 'Strict'
    JWT_COOKIE_CSRF_PROTECT = True
    JWT_ACCESS_COOKIE_NAME = 'access_token_cookie'
    JWT_ACCESS_CSRF_HEADER_NAME = 'X-CSRF-Token'

    RATELIMIT_STORAGE_URI = _validated_config['RATELIMIT_STORAGE_URI']
    CORS_ORIGINS_LIST = _validated_config['CORS_ORIGINS']

    DEBUG = _validated_config['DEBUG']

    # Lightning provider
    LIGHTNING_BACKEND = _validated_config['LIGHTNING_BACKEND']
    LIGHTNING_TIMEOUT_SECONDS = _validated_config['LIGHTNING_TIMEOUT_SECONDS']
    LND_REST_URL = _validated_config['LND_REST_URL']
    LND_TLS_CERT_PATH = _validated_config['LND_TLS_CERT_PATH']
    LND_MACAROON_PATH = _validated_config['LND_MACAROON_PATH']
    LNBITS_URL = _validated_config['LNBITS_URL']
    LNBITS_API_KEY = _validated_config['LNBITS_API_KEY']

    # Game and deposit settings (amounts in satoshis)
    DEFAULT_SATS_PER_CREDIT = _validated_config['DEFAULT_SATS_PER_CREDIT']
    DEFAULT_BET_CREDITS = _validated_config['DEFAULT_BET_CREDITS']
    MAX_DEPOSIT_SATS = _validated_config['MAX_DEPOSIT_SATS']

    # Feature Flags
    ALLOW_SIMULATED_PAYMENTS = _validated_config['ALLOW_SIMULATED_PAYMENTS']


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///./test_slots_be_isolated.db' # File-based so worker threads share it
    DATABASE_FILE_PATH = SQLALCHEMY_DATABASE_URI.replace('sqlite:///', '')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'connect_args': {'check_same_thread': False, 'timeout': 30}
    }
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length-for-hs256'
    JWT_COOKIE_CSRF_PROTECT = False
    JWT_COOKIE_SECURE = False
    RATELIMIT_ENABLED = False
    LIGHTNING_BACKEND = 'lnbits'
    LNBITS_URL = 'http://lnbits.test'
    LNBITS_API_KEY = 'test-invoice-key'
    ALLOW_SIMULATED_PAYMENTS = True
    DEFAULT_SATS_PER_CREDIT = 1
    DEFAULT_BET_CREDITS = 10
    MAX_DEPOSIT_SATS = 1_000_000
