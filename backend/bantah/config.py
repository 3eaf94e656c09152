import os
from datetime import timedelta
from pathlib import Path
from dotenv import load_dotenv

# Load .env from the package directory or its parent
env_path = Path(__file__).parent / '.env'
if not env_path.exists():
    env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


def _env_float(name, default):
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else default


def _env_int(name, default):
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or SECRET_KEY
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=_env_int('JWT_ACCESS_TOKEN_EXPIRES', 24))
    MONGO_URI = os.getenv('MONGO_URI', 'mongodb://localhost:27017/bantah')

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get('CORS_ORIGINS', 'http://localhost:5173').split(',')
        if origin.strip()
    ]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Wagering
    CURRENCY = os.environ.get('CURRENCY', 'NGN')
    ADMIN_FEE_PERCENT = _env_float('ADMIN_FEE_PERCENT', 0.05)
    MIN_WAGER_AMOUNT = _env_float('MIN_WAGER_AMOUNT', 100)
    MIN_CHALLENGE_AMOUNT = _env_float('MIN_CHALLENGE_AMOUNT', 100)
    CHALLENGE_DEFAULT_EXPIRY_MINUTES = _env_int('CHALLENGE_DEFAULT_EXPIRY_MINUTES', 30)
    COIN_EXCHANGE_RATE = _env_float('COIN_EXCHANGE_RATE', 10)

    # Wallet
    MIN_DEPOSIT_AMOUNT = _env_float('MIN_DEPOSIT_AMOUNT', 100)
    MIN_WITHDRAWAL_AMOUNT = _env_float('MIN_WITHDRAWAL_AMOUNT', 100)

    # Bonuses
    WELCOME_BONUS_AMOUNT = _env_float('WELCOME_BONUS_AMOUNT', 500)
    REFERRAL_REWARD_AMOUNT = _env_float('REFERRAL_REWARD_AMOUNT', 200)

    # Paystack
    PAYSTACK_SECRET_KEY = os.environ.get('PAYSTACK_SECRET_KEY')
    PAYSTACK_BASE_URL = os.environ.get('PAYSTACK_BASE_URL', 'https://api.paystack.co')
    PAYSTACK_MOCK_MODE = _env_bool('PAYSTACK_MOCK_MODE', False)


class TestingConfig(Config):
    TESTING = True
    MONGO_URI = 'mongodb://localhost:27017/bantah_test'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    PAYSTACK_MOCK_MODE = True
    LOG_LEVEL = 'WARNING'
