"""Shared pytest fixtures: in-memory database, fake WhatsApp sender, API helpers."""

import os
import tempfile

# Must be set before the app module builds its engine
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ.setdefault('UPLOAD_FOLDER', tempfile.mkdtemp(prefix='debt-tracker-uploads-'))

from datetime import datetime
from decimal import Decimal

import pytest

from app import app as flask_app
from models import db, User, Debtor, Debt
from notification_service import NotificationService
from repository import CollectionsRepository
from valuation import derive_status, owed_amount
from whatsapp_service import DeliveryResult, normalize_phone

NOW = datetime(2025, 3, 10, 9, 0)


class FakeSender:
    """Stands in for WhatsAppService; records every send and replays queued results."""

    def __init__(self):
        self.sent = []
        self.results = []

    def fail_next(self, error='Status 500', attempts=1):
        self.results.append(DeliveryResult(False, error, attempts, None))

    def send_message(self, phone, message):
        self.sent.append((phone, message))
        number = normalize_phone(phone)
        if self.results:
            result = self.results.pop(0)
            return result._replace(phone=number)
        return DeliveryResult(True, None, 1, number)


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError('No JSON body')
        return self._body


class FakeSession:
    """Replays a scripted list of gateway responses or exceptions for ``post``."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def app(tmp_path):
    flask_app.config.update(TESTING=True, UPLOAD_FOLDER=str(tmp_path / 'uploads'))
    ctx = flask_app.app_context()
    ctx.push()
    db.create_all()
    yield flask_app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(app, sender, sleeps):
    """NotificationService wired to the test database, a fake sender and a fixed clock."""
    original = app.extensions['notification_service']
    service = NotificationService(
        CollectionsRepository(db.session),
        sender,
        clock=lambda: NOW,
        sleep=sleeps.append,
    )
    app.extensions['notification_service'] = service
    yield service
    app.extensions['notification_service'] = original


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(client):
    response = client.post('/api/auth/register', json={
        'name': 'Test Lender',
        'email': 'lender@example.com',
        'password': 'secret123',
        'phone': '841112223'
    })
    token = response.get_json()['data']['token']
    return {'Authorization': f'Bearer {token}'}


# Factories
def make_user(name='Owner', email='owner@example.com', phone='841234567'):
    user = User(name=name, email=email, phone=phone)
    user.set_password('password')
    db.session.add(user)
    db.session.commit()
    return user


def make_debtor(user, name='Ana Machava', phone='0855075735'):
    debtor = Debtor(user_id=user.id, name=name, phone=phone)
    db.session.add(debtor)
    db.session.commit()
    return debtor


def make_debt(debtor, due_date, principal='1000', rate='10', auto_notify=True,
              periodicity=2, last_notification=None, now=NOW):
    principal = Decimal(principal)
    rate = Decimal(rate)
    debt = Debt(
        user_id=debtor.user_id,
        debtor_id=debtor.id,
        principal=principal,
        interest_rate=rate,
        due_date=due_date,
        current_amount=owed_amount(principal, rate),
        status=derive_status(due_date, now),
        auto_notify=auto_notify,
        notify_periodicity=periodicity,
        last_notification=last_notification,
    )
    db.session.add(debt)
    db.session.commit()
    return debt
