import pytest
import requests

from conftest import FakeResponse, FakeSession
from whatsapp_service import WhatsAppService, normalize_phone


def make_service(session, sleeps):
    return WhatsAppService('https://gateway.test/enviar', session=session, sleep=sleeps.append)


@pytest.mark.parametrize('raw', ['0855075735', '+258 85 507 5735', '855075735', '(258) 85-507-5735'])
def test_phone_normalization(raw):
    assert normalize_phone(raw) == '258855075735'


def test_successful_delivery_posts_gateway_payload():
    sleeps = []
    session = FakeSession(FakeResponse(200, {'ok': True}))
    result = make_service(session, sleeps).send_message('0855075735', 'Hello')

    assert result.success
    assert result.attempts == 1
    assert result.phone == '258855075735'
    url, kwargs = session.calls[0]
    assert url == 'https://gateway.test/enviar'
    assert kwargs['json'] == {'numero': '258855075735', 'mensagem': 'Hello'}
    assert kwargs['timeout'] == 15
    assert kwargs['verify'] is True


def test_transport_failures_are_retried_until_success():
    sleeps = []
    session = FakeSession(
        requests.ConnectionError('connection refused'),
        requests.Timeout('timed out'),
        FakeResponse(200, {}),
    )
    result = make_service(session, sleeps).send_message('855075735', 'Hello')

    assert result.success
    assert result.attempts == 3
    assert sleeps == [2, 4]


def test_transport_failures_exhaust_attempts():
    sleeps = []
    session = FakeSession(*[requests.Timeout('timed out') for _ in range(3)])
    result = make_service(session, sleeps).send_message('855075735', 'Hello')

    assert not result.success
    assert result.attempts == 3
    assert 'timed out' in result.error


def test_business_error_is_not_retried():
    sleeps = []
    session = FakeSession(FakeResponse(400, {'error': 'Invalid number'}))
    result = make_service(session, sleeps).send_message('855075735', 'Hello')

    assert not result.success
    assert result.attempts == 1
    assert result.error == 'Invalid number'
    assert sleeps == []


def test_business_error_without_body_reports_status():
    session = FakeSession(FakeResponse(503))
    result = make_service(session, []).send_message('855075735', 'Hello')
    assert result.error == 'Status 503'


def test_from_config_reads_gateway_settings():
    config = {
        'WHATSAPP_API_URL': 'https://gateway.test/enviar',
        'WHATSAPP_TIMEOUT': 10,
        'WHATSAPP_MAX_ATTEMPTS': 5,
        'WHATSAPP_BACKOFF_SECONDS': 1,
        'PHONE_COUNTRY_PREFIX': '27',
        'WHATSAPP_VERIFY_TLS': False,
    }
    service = WhatsAppService.from_config(config, session=FakeSession())
    assert service.max_attempts == 5
    assert service.country_prefix == '27'
    assert service.verify_tls is False


def test_connection_dropped_mid_response_is_retried():
    sleeps = []
    session = FakeSession(
        requests.exceptions.ChunkedEncodingError('Connection broken: IncompleteRead'),
        FakeResponse(200, {}),
    )
    result = make_service(session, sleeps).send_message('855075735', 'Hello')

    assert result.success
    assert result.attempts == 2
    assert sleeps == [2]


def test_other_request_errors_fail_without_retry():
    sleeps = []
    session = FakeSession(requests.exceptions.InvalidURL('Invalid URL'), FakeResponse(200, {}))
    result = make_service(session, sleeps).send_message('855075735', 'Hello')

    assert not result.success
    assert result.attempts == 1
    assert result.error == 'Invalid URL'
    assert sleeps == []
