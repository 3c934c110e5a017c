# config/settings.py
"""
Environment-based configuration for the blog notification service
"""

import os
from typing import List, Optional

from dotenv import load_dotenv

from core.exceptions import ConfigurationError


def _env(*names: str, default: Optional[str] = None) -> Optional[str]:
    """First non-empty environment value among names"""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _public_base_url() -> Optional[str]:
    explicit = _env('PUBLIC_BASE_URL', 'BASE_URL')
    if explicit:
        return explicit
    vercel_url = os.environ.get('VERCEL_URL')
    return f"https://{vercel_url}" if vercel_url else None


class Config:
    """Runtime settings read from the environment at construction time"""

    # Security headers added to every response
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
        'Referrer-Policy': 'strict-origin-when-cross-origin',
    }

    TESTING = False

    def __init__(self, load_env_file: bool = True):
        if load_env_file:
            load_dotenv()

        # Hosted data store
        self.SUPABASE_URL = _env('SUPABASE_URL', 'VITE_SUPABASE_URL')
        self.SUPABASE_KEY = _env('SUPABASE_KEY', 'VITE_SUPABASE_ANON_KEY')

        # Queue
        self.QSTASH_TOKEN = _env('QSTASH_TOKEN')
        self.QSTASH_URL = _env('QSTASH_URL')
        self.QSTASH_CURRENT_SIGNING_KEY = _env('QSTASH_CURRENT_SIGNING_KEY')
        self.QSTASH_NEXT_SIGNING_KEY = _env('QSTASH_NEXT_SIGNING_KEY')
        self.QSTASH_RETRIES = int(_env('QSTASH_RETRIES', default='3'))
        self.QSTASH_CLOCK_TOLERANCE = int(_env('QSTASH_CLOCK_TOLERANCE', default='0'))
        self.PUBLIC_BASE_URL = _public_base_url()

        # Mail transport
        self.EMAIL_USER = _env('EMAIL_USER')
        self.EMAIL_PASS = _env('EMAIL_PASS')
        self.SMTP_HOST = _env('SMTP_HOST', default='smtp.gmail.com')
        self.SMTP_PORT = int(_env('SMTP_PORT', default='587'))
        self.SMTP_TIMEOUT = float(_env('SMTP_TIMEOUT', default='30'))
        self.MAIL_FROM_ADDRESS = _env('MAIL_FROM_ADDRESS', 'EMAIL_USER')
        self.MAIL_FROM_NAME = _env('MAIL_FROM_NAME', default='CodeSapiens Blog')

        # Rendering
        self.SITE_URL = _env('SITE_URL', default='https://codesapiens.in')
        self.BRAND_NAME = _env('BRAND_NAME', default='CodeSapiens')
        self.SANITIZE_BLOG_CONTENT = _env_bool('SANITIZE_BLOG_CONTENT', True)

        # Delivery ledger
        self.REDIS_URL = _env('REDIS_URL', default='redis://localhost:6379/1')
        self.DELIVERY_LEDGER_TTL = int(_env('DELIVERY_LEDGER_TTL', default='86400'))

        # Service
        self.LOG_LEVEL = _env('LOG_LEVEL', default='INFO')
        self.LOG_FILE = _env('LOG_FILE')
        self.CORS_ORIGINS: List[str] = [
            origin.strip() for origin in _env('CORS_ORIGINS', default='*').split(',')
            if origin.strip()
        ]
        self.PORT = int(_env('PORT', default='3001'))
        self.VERSION = _env('APP_VERSION', default='1.0.0')
        self.MAX_CONTENT_LENGTH = 50 * 1024 * 1024  # blog bodies can embed images

    def validate(self):
        """
        Fail fast on missing required settings

        Raises:
            ConfigurationError: Supabase URL or key is absent
        """
        missing = [name for name in ('SUPABASE_URL', 'SUPABASE_KEY') if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)} "
                f"(set SUPABASE_URL/SUPABASE_KEY or VITE_SUPABASE_URL/VITE_SUPABASE_ANON_KEY)"
            )

    def to_flask(self) -> dict:
        return {key: getattr(self, key) for key in dir(self) if key.isupper()}


class TestingConfig(Config):
    """Fixed settings for the test suite"""

    TESTING = True

    def __init__(self, **overrides):
        super().__init__(load_env_file=False)
        self.SUPABASE_URL = 'https://example.supabase.co'
        self.SUPABASE_KEY = 'test-anon-key'
        self.QSTASH_TOKEN = 'test-qstash-token'
        self.QSTASH_URL = None
        self.QSTASH_CURRENT_SIGNING_KEY = 'sig_current_0123456789abcdef0123456789abcdef'
        self.QSTASH_NEXT_SIGNING_KEY = 'sig_next_0123456789abcdef0123456789abcdef'
        self.QSTASH_RETRIES = 3
        self.QSTASH_CLOCK_TOLERANCE = 0
        self.PUBLIC_BASE_URL = None
        self.EMAIL_USER = 'blog@example.com'
        self.EMAIL_PASS = 'app-password'
        self.SMTP_HOST = 'smtp.example.com'
        self.SMTP_PORT = 587
        self.MAIL_FROM_ADDRESS = 'blog@example.com'
        self.MAIL_FROM_NAME = 'CodeSapiens Blog'
        self.SITE_URL = 'https://codesapiens.in'
        self.BRAND_NAME = 'CodeSapiens'
        self.SANITIZE_BLOG_CONTENT = True
        self.LOG_LEVEL = 'DEBUG'
        self.LOG_FILE = None
        self.CORS_ORIGINS = ['*']
        self.VERSION = '1.0.0'
        self.REDIS_URL = 'redis://localhost:6379/15'
        for key, value in overrides.items():
            setattr(self, key, value)
