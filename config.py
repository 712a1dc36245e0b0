import logging
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'on'}


def _env_int(name, default):
    value = os.getenv(name)
    return int(value) if value else default


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'your-secret-key')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///debt_tracker.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'jwt-secret-key')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=7)

    # Collateral uploads
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'uploads'))
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024

    # WhatsApp gateway
    WHATSAPP_API_URL = os.getenv('WHATSAPP_API_URL', 'https://wtsapi.duckdns.org/enviar')
    WHATSAPP_TIMEOUT = _env_int('WHATSAPP_TIMEOUT', 15)
    WHATSAPP_MAX_ATTEMPTS = _env_int('WHATSAPP_MAX_ATTEMPTS', 3)
    WHATSAPP_BACKOFF_SECONDS = _env_int('WHATSAPP_BACKOFF_SECONDS', 2)
    WHATSAPP_VERIFY_TLS = _env_bool('WHATSAPP_VERIFY_TLS', True)
    PHONE_COUNTRY_PREFIX = os.getenv('PHONE_COUNTRY_PREFIX', '258')

    # Reminder messages
    CURRENCY_CODE = os.getenv('CURRENCY_CODE', 'MZN')
    MESSAGE_TAG = os.getenv('MESSAGE_TAG', '#DEBTTRACKER')

    # Dispatch cycle
    NOTIFICATION_SEND_INTERVAL = _env_int('NOTIFICATION_SEND_INTERVAL', 5)
    SUMMARY_SEND_INTERVAL = _env_int('SUMMARY_SEND_INTERVAL', 3)
    OVERDUE_NOTIFY_PERIODICITY = _env_int('OVERDUE_NOTIFY_PERIODICITY', 2)
    SEND_DISPATCH_SUMMARY = _env_bool('SEND_DISPATCH_SUMMARY', True)
    NOTIFICATION_DISPATCH_TIME = os.getenv('NOTIFICATION_DISPATCH_TIME', '09:00')

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


def configure_logging(level=None):
    """Configure root logging for the API and scheduler processes."""
    logging.basicConfig(
        level=(level or Config.LOG_LEVEL).upper(),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )
