"""
Configuration validation and startup checks.

Implements fail-fast validation so that a production process never starts with
insecure defaults or without the credentials the Lightning provider needs.
Development and test runs fall back to local defaults and emit warnings.
"""

import os
import sys
import warnings
import secrets
from typing import List, Optional


SUPPORTED_LIGHTNING_BACKENDS = ('lnd', 'lnbits')


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid."""
    pass


def _env_flag(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't')


class ConfigValidator:
    """Validates application configuration and enforces production security."""

    def __init__(self, is_production: bool = None):
        """
        Args:
            is_production: If None, auto-detect from FLASK_ENV, FLASK_DEBUG and TESTING.
        """
        self.is_testing = _env_flag('TESTING')
        if is_production is None:
            flask_env = os.getenv('FLASK_ENV', '').lower()
            flask_debug = os.getenv('FLASK_DEBUG', 'False').lower()
            is_production = not self.is_testing and (
                flask_env == 'production' or
                (flask_env != 'development' and flask_debug not in ('true', '1', 't'))
            )

        self.is_production = is_production
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def _problem(self, message: str):
        if self.is_production:
            self.errors.append(f"CRITICAL: {message}")
        else:
            self.warnings.append(f"WARNING: {message}")

    def validate_required_env_var(self, var_name: str, description: str = None) -> Optional[str]:
        value = os.getenv(var_name)
        if not value:
            self._problem(f"{description or var_name} ({var_name}) is not set")
        return value

    def validate_jwt_config(self):
        jwt_secret = self.validate_required_env_var('JWT_SECRET_KEY', 'JWT Secret Key')

        if not jwt_secret:
            if self.is_production:
                raise ConfigValidationError("JWT_SECRET_KEY is required in production")
            jwt_secret = secrets.token_urlsafe(64)
        elif len(jwt_secret) < 32:
            self._problem("JWT_SECRET_KEY must be at least 32 characters long")

        try:
            access_expires = int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', str(86400)))
        except ValueError:
            raise ConfigValidationError("JWT_ACCESS_TOKEN_EXPIRES must be an integer")

        return jwt_secret, access_expires

    def validate_database_config(self) -> str:
        database_url = os.getenv('DATABASE_URL')

        if database_url:
            if not database_url.startswith(('postgresql://', 'postgresql+psycopg2://', 'sqlite://')):
                self.errors.append("CRITICAL: DATABASE_URL must use a supported database driver")
            return database_url

        if self.is_production:
            self.errors.append("CRITICAL: DATABASE_URL must be set in production")
            return None

        self.warnings.append("DATABASE_URL not set - using local sqlite:///slots.db")
        return 'sqlite:///slots.db'

    def validate_lightning_config(self) -> dict:
        backend = os.getenv('LIGHTNING_BACKEND', 'lnd').lower()
        if backend not in SUPPORTED_LIGHTNING_BACKENDS:
            self.errors.append(
                f"CRITICAL: LIGHTNING_BACKEND must be one of {', '.join(SUPPORTED_LIGHTNING_BACKENDS)}, got '{backend}'"
            )

        try:
            timeout = float(os.getenv('LIGHTNING_TIMEOUT_SECONDS', '10'))
        except ValueError:
            raise ConfigValidationError("LIGHTNING_TIMEOUT_SECONDS must be a number")
        if timeout <= 0:
            raise ConfigValidationError("LIGHTNING_TIMEOUT_SECONDS must be positive")

        settings = {
            'LIGHTNING_BACKEND': backend,
            'LIGHTNING_TIMEOUT_SECONDS': timeout,
            'LND_REST_URL': os.getenv('LND_REST_URL'),
            'LND_TLS_CERT_PATH': os.getenv('LND_TLS_CERT_PATH'),
            'LND_MACAROON_PATH': os.getenv('LND_MACAROON_PATH'),
            'LNBITS_URL': os.getenv('LNBITS_URL'),
            'LNBITS_API_KEY': os.getenv('LNBITS_API_KEY'),
        }

        if backend == 'lnd':
            required = ('LND_REST_URL', 'LND_TLS_CERT_PATH', 'LND_MACAROON_PATH')
        else:
            required = ('LNBITS_URL', 'LNBITS_API_KEY')
        missing = [name for name in required if not settings[name]]
        if missing and not self.is_testing:
            self._problem(f"Missing Lightning credentials ({', '.join(missing)}). Deposits will fail.")

        return settings

    def validate_rate_limiting_config(self) -> str:
        rate_limit_uri = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
        if rate_limit_uri == 'memory://' and self.is_production:
            self.warnings.append(
                "Rate limiting uses memory:// storage in production. "
                "Set RATELIMIT_STORAGE_URI to a Redis URL for multi-process deployments."
            )
        return rate_limit_uri

    def validate_cors_config(self) -> List[str]:
        cors_origins = os.getenv('CORS_ORIGINS', '')
        if not cors_origins:
            return []

        origins = [origin.strip() for origin in cors_origins.split(',') if origin.strip()]
        for origin in origins:
            if not origin.startswith(('http://', 'https://')):
                self.warnings.append(f"CORS origin '{origin}' should include protocol (http:// or https://)")
        return origins

    def validate_game_config(self) -> dict:
        try:
            sats_per_credit = int(os.getenv('DEFAULT_SATS_PER_CREDIT', '1'))
            bet_credits = int(os.getenv('DEFAULT_BET_CREDITS', '10'))
            max_deposit = int(os.getenv('MAX_DEPOSIT_SATS', '1000000'))
        except ValueError:
            raise ConfigValidationError("DEFAULT_SATS_PER_CREDIT, DEFAULT_BET_CREDITS and MAX_DEPOSIT_SATS must be integers")

        if sats_per_credit <= 0 or bet_credits <= 0 or max_deposit <= 0:
            raise ConfigValidationError("DEFAULT_SATS_PER_CREDIT, DEFAULT_BET_CREDITS and MAX_DEPOSIT_SATS must be positive")

        allow_simulated = _env_flag('ALLOW_SIMULATED_PAYMENTS')
        if allow_simulated and self.is_production:
            self.errors.append("CRITICAL: ALLOW_SIMULATED_PAYMENTS must be disabled in production")

        return {
            'DEFAULT_SATS_PER_CREDIT': sats_per_credit,
            'DEFAULT_BET_CREDITS': bet_credits,
            'MAX_DEPOSIT_SATS': max_deposit,
            'ALLOW_SIMULATED_PAYMENTS': allow_simulated,
        }

    def validate_all(self) -> dict:
        """
        Validate all configuration settings.

        Returns:
            Dictionary containing validated configuration values

        Raises:
            ConfigValidationError: If critical configuration is missing in production
        """
        config = {}

        try:
            config['JWT_SECRET_KEY'], config['JWT_ACCESS_TOKEN_EXPIRES'] = self.validate_jwt_config()
            config['SQLALCHEMY_DATABASE_URI'] = self.validate_database_config()
            config.update(self.validate_lightning_config())
            config['RATELIMIT_STORAGE_URI'] = self.validate_rate_limiting_config()
            config['CORS_ORIGINS'] = self.validate_cors_config()
            config.update(self.validate_game_config())

            config['DEBUG'] = _env_flag('FLASK_DEBUG')
            config['JWT_COOKIE_SECURE'] = _env_flag('JWT_COOKIE_SECURE', 'True')

            if self.is_production:
                if config['DEBUG']:
                    self.errors.append("CRITICAL: DEBUG mode must be disabled in production (set FLASK_DEBUG=False)")
                if not config['JWT_COOKIE_SECURE']:
                    self.errors.append("CRITICAL: JWT cookies must be secure in production (set JWT_COOKIE_SECURE=True)")

            if self.errors:
                error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in self.errors)
                if self.warnings:
                    error_msg += "\n\nWarnings:\n" + "\n".join(f"  - {warning}" for warning in self.warnings)
                raise ConfigValidationError(error_msg)

            for warning in self.warnings:
                warnings.warn(warning, UserWarning)

            return config

        except Exception as e:
            if isinstance(e, ConfigValidationError):
                raise
            raise ConfigValidationError(f"Configuration validation error: {str(e)}") from e


def validate_production_config() -> dict:
    """
    Validate configuration with fail-fast behaviour.

    Raises:
        SystemExit: If validation fails, so an insecure process never starts.
    """
    try:
        validator = ConfigValidator()
        return validator.validate_all()
    except ConfigValidationError as e:
        print("\nCONFIGURATION VALIDATION FAILED\n", file=sys.stderr)
        print(str(e), file=sys.stderr)
        print("\nApplication startup ABORTED\n", file=sys.stderr)
        sys.exit(1)
