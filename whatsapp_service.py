import logging
import re
import time
from collections import namedtuple

import requests

from retry import linear_backoff, retry_with_backoff

logger = logging.getLogger(__name__)

DeliveryResult = namedtuple('DeliveryResult', ['success', 'error', 'attempts', 'phone'])

_PHONE_NOISE = re.compile(r'[\s\-()+]')


class DeliveryError(Exception):
    """Base class for failures talking to the WhatsApp gateway."""


class TransportError(DeliveryError):
    """The gateway could not be reached (timeout, DNS, connection reset)."""


class GatewayBusinessError(DeliveryError):
    """The gateway answered but refused the message."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


def normalize_phone(phone, country_prefix='258'):
    """Return ``phone`` in international form without symbols.

    ``0855075735`` and ``+258 85 507 5735`` both become ``258855075735``.
    """
    digits = _PHONE_NOISE.sub('', phone or '')
    if not digits.startswith(country_prefix):
        if digits.startswith('0'):
            digits = digits[1:]
        digits = country_prefix + digits
    return digits


class WhatsAppService:
    def __init__(self, api_url, timeout=15, max_attempts=3, backoff_seconds=2,
                 country_prefix='258', verify_tls=True, session=None, sleep=time.sleep):
        self.api_url = api_url
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.country_prefix = country_prefix
        self.verify_tls = verify_tls
        self.session = session or requests.Session()
        self.sleep = sleep

    @classmethod
    def from_config(cls, config, **kwargs):
        return cls(
            api_url=config['WHATSAPP_API_URL'],
            timeout=config['WHATSAPP_TIMEOUT'],
            max_attempts=config['WHATSAPP_MAX_ATTEMPTS'],
            backoff_seconds=config['WHATSAPP_BACKOFF_SECONDS'],
            country_prefix=config['PHONE_COUNTRY_PREFIX'],
            verify_tls=config['WHATSAPP_VERIFY_TLS'],
            **kwargs
        )

    def _post(self, phone, message):
        try:
            response = self.session.post(
                self.api_url,
                json={'numero': phone, 'mensagem': message},
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout,
                verify=self.verify_tls,
            )
        except (requests.ConnectionError, requests.Timeout, requests.exceptions.ChunkedEncodingError) as e:
            raise TransportError(str(e)) from e
        except requests.RequestException as e:
            raise DeliveryError(str(e)) from e

        if response.status_code != 200:
            raise GatewayBusinessError(self._error_text(response), status_code=response.status_code)
        return response

    @staticmethod
    def _error_text(response):
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get('error'):
            return str(body['error'])
        return f'Status {response.status_code}'

    def send_message(self, phone, message):
        """Deliver ``message`` to ``phone``; never raises for delivery failures."""
        number = normalize_phone(phone, self.country_prefix)
        attempts = 0

        def attempt_delivery(attempt):
            nonlocal attempts
            attempts = attempt
            return self._post(number, message)

        logger.info("Sending WhatsApp message to %s", number)
        try:
            retry_with_backoff(
                attempt_delivery,
                max_attempts=self.max_attempts,
                backoff=linear_backoff(self.backoff_seconds),
                retry_on=(TransportError,),
                sleep=self.sleep,
            )
        except DeliveryError as e:
            logger.error("Failed to send WhatsApp message to %s: %s", number, e)
            return DeliveryResult(False, str(e), attempts, number)

        logger.info("WhatsApp message delivered to %s", number)
        return DeliveryResult(True, None, attempts, number)
