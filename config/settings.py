# config/settings.py
"""
Environment-driven configuration for the contact relay
"""

import os
from typing import Any, Dict, List, Mapping, Optional, Type

from dotenv import load_dotenv

from core.exceptions import ConfigurationError

REQUIRED_ENV_VARS = ('EMAIL_USERNAME', 'EMAIL_PASSWORD', 'ADMIN_EMAIL')

TRUE_VALUES = {'1', 'true', 'yes', 'on'}
FALSE_VALUES = {'0', 'false', 'no', 'off', ''}


class BaseConfig:
    """Settings shared by every environment"""

    ENV = 'production'
    DEBUG = False
    TESTING = False

    # Mail transport
    SMTP_HOST = 'smtp.gmail.com'
    SMTP_PORT = 465
    SMTP_TIMEOUT = 30.0
    SMTP_VERIFY_ON_STARTUP = True

    # Message composition
    MAIL_SENDER_NAME = 'Website Contact'
    COMPANY_NAME = 'Your Company'
    REQUIRE_PHONE = False
    SEND_CONFIRMATION = True

    # Templates
    TEMPLATE_AUTOESCAPE = True
    ENABLE_CSS_INLINING = True

    # Rate limiting
    SEND_EMAIL_RATE_LIMIT = '5 per 15 minutes'
    RATELIMIT_STORAGE_URI = 'memory://'
    RATELIMIT_STRATEGY = 'fixed-window'
    RATELIMIT_HEADERS_ENABLED = True

    # HTTP
    PORT = 3000
    ALLOWED_ORIGINS = ['*']
    MAX_CONTENT_LENGTH = 64 * 1024  # 64KB
    PROXY_FIX_X_FOR = 0  # Trusted reverse proxy hops; 0 ignores X-Forwarded-*

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = None

    # Security headers
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
        'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
        'Referrer-Policy': 'strict-origin-when-cross-origin',
        'Permissions-Policy': 'camera=(), microphone=(), geolocation=()'
    }


class DevelopmentConfig(BaseConfig):
    ENV = 'development'
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(BaseConfig):
    ENV = 'production'


class TestingConfig(BaseConfig):
    ENV = 'testing'
    TESTING = True
    SMTP_VERIFY_ON_STARTUP = False
    ENABLE_CSS_INLINING = False


CONFIG_BY_NAME: Dict[str, Type[BaseConfig]] = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}


def parse_bool(value: Optional[str], default: bool) -> bool:
    """Interpret an environment flag"""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value: {value!r}")


def parse_origins(value: Optional[str]) -> List[str]:
    """Split a comma separated origin list"""
    if not value:
        return ['*']
    origins = [origin.strip() for origin in value.split(',') if origin.strip()]
    return origins or ['*']


def _parse_int(environ: Mapping[str, str], key: str, default: int) -> int:
    value = environ.get(key)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")


def _parse_float(environ: Mapping[str, str], key: str, default: float) -> float:
    value = environ.get(key)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {value!r}")


def resolve_config_name(environ: Optional[Mapping[str, str]] = None) -> str:
    """Pick the configuration name from APP_ENV, then FLASK_ENV"""
    environ = os.environ if environ is None else environ
    name = (environ.get('APP_ENV') or environ.get('FLASK_ENV') or 'production').strip().lower()
    if name not in CONFIG_BY_NAME:
        raise ConfigurationError(
            f"Unknown environment {name!r}; expected one of {', '.join(sorted(CONFIG_BY_NAME))}"
        )
    return name


def check_required_env(environ: Mapping[str, str]) -> None:
    """Raise ConfigurationError naming every required variable that is unset"""
    missing = [key for key in REQUIRED_ENV_VARS if not (environ.get(key) or '').strip()]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}",
            missing=missing
        )


def load_config(config_name: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None,
                load_env_file: bool = True) -> Dict[str, Any]:
    """
    Build the application configuration

    Values come from the config class for ``config_name`` overridden by
    environment variables. A ``.env`` file is read into ``os.environ`` first
    unless an explicit ``environ`` mapping is supplied.

    Raises:
        ConfigurationError: a required variable is missing or a value is malformed
    """
    if environ is None:
        if load_env_file:
            load_dotenv()
        environ = os.environ

    config_name = config_name or resolve_config_name(environ)
    if config_name not in CONFIG_BY_NAME:
        raise ConfigurationError(f"Unknown environment {config_name!r}")

    check_required_env(environ)

    base = CONFIG_BY_NAME[config_name]
    config = {key: getattr(base, key) for key in dir(base) if key.isupper()}

    smtp_port = _parse_int(environ, 'SMTP_PORT', base.SMTP_PORT)

    config.update({
        'EMAIL_USERNAME': environ['EMAIL_USERNAME'].strip(),
        'EMAIL_PASSWORD': environ['EMAIL_PASSWORD'],
        'ADMIN_EMAIL': environ['ADMIN_EMAIL'].strip(),
        'ALLOWED_ORIGINS': parse_origins(environ.get('ALLOWED_ORIGINS')),
        'PORT': _parse_int(environ, 'PORT', base.PORT),
        'PROXY_FIX_X_FOR': _parse_int(environ, 'PROXY_FIX_X_FOR', base.PROXY_FIX_X_FOR),
        'SMTP_HOST': environ.get('SMTP_HOST') or base.SMTP_HOST,
        'SMTP_PORT': smtp_port,
        'SMTP_USE_TLS': parse_bool(environ.get('SMTP_USE_TLS'), smtp_port == 465),
        'SMTP_START_TLS': parse_bool(environ.get('SMTP_START_TLS'), smtp_port == 587),
        'SMTP_TIMEOUT': _parse_float(environ, 'SMTP_TIMEOUT', base.SMTP_TIMEOUT),
        'SMTP_VERIFY_ON_STARTUP': parse_bool(environ.get('SMTP_VERIFY_ON_STARTUP'),
                                             base.SMTP_VERIFY_ON_STARTUP),
        'MAIL_SENDER_NAME': environ.get('MAIL_SENDER_NAME') or base.MAIL_SENDER_NAME,
        'COMPANY_NAME': environ.get('COMPANY_NAME') or base.COMPANY_NAME,
        'REQUIRE_PHONE': parse_bool(environ.get('REQUIRE_PHONE'), base.REQUIRE_PHONE),
        'SEND_CONFIRMATION': parse_bool(environ.get('SEND_CONFIRMATION'), base.SEND_CONFIRMATION),
        'SEND_EMAIL_RATE_LIMIT': environ.get('SEND_EMAIL_RATE_LIMIT') or base.SEND_EMAIL_RATE_LIMIT,
        'RATELIMIT_STORAGE_URI': environ.get('RATELIMIT_STORAGE_URI') or base.RATELIMIT_STORAGE_URI,
        'TEMPLATE_AUTOESCAPE': parse_bool(environ.get('TEMPLATE_AUTOESCAPE'), base.TEMPLATE_AUTOESCAPE),
        'ENABLE_CSS_INLINING': parse_bool(environ.get('ENABLE_CSS_INLINING'), base.ENABLE_CSS_INLINING),
        'LOG_LEVEL': (environ.get('LOG_LEVEL') or base.LOG_LEVEL).upper(),
        'LOG_FILE': environ.get('LOG_FILE') or base.LOG_FILE,
    })

    if config['SMTP_USE_TLS'] and config['SMTP_START_TLS']:
        raise ConfigurationError("SMTP_USE_TLS and SMTP_START_TLS cannot both be enabled")

    if config['PROXY_FIX_X_FOR'] < 0:
        raise ConfigurationError("PROXY_FIX_X_FOR must not be negative")

    return config
