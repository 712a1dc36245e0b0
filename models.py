from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
from decimal import Decimal
from werkzeug.security import generate_password_hash, check_password_hash
import logging
import uuid

from valuation import PENDING, OVERDUE, PAID, InvalidInput, valuate

logger = logging.getLogger(__name__)

db = SQLAlchemy()


def new_id():
    return str(uuid.uuid4())


# User Management
class User(db.Model):
    id = db.Column(db.String(50), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(30))  # receives dispatch summaries
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    debtors = db.relationship('Debtor', backref='owner')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


# Core Entities
class Debtor(db.Model):
    id = db.Column(db.String(50), primary_key=True, default=new_id)
    user_id = db.Column(db.String(50), db.ForeignKey('user.id'), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(30), nullable=False)
    other_phones = db.Column(db.String(200))
    location = db.Column(db.String(200))
    description = db.Column(db.Text)
    active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    debts = db.relationship('Debt', backref='debtor')


class Debt(db.Model):
    id = db.Column(db.String(50), primary_key=True, default=new_id)
    user_id = db.Column(db.String(50), db.ForeignKey('user.id'), nullable=False)
    debtor_id = db.Column(db.String(50), db.ForeignKey('debtor.id'), nullable=False)
    principal = db.Column(db.Numeric(15, 2), nullable=False)
    interest_rate = db.Column(db.Numeric(7, 2), nullable=False, default=0)
    loan_date = db.Column(db.DateTime, default=datetime.utcnow)
    due_date = db.Column(db.DateTime, nullable=False)
    current_amount = db.Column(db.Numeric(15, 2), nullable=False)
    status = db.Column(db.Enum(PENDING, OVERDUE, PAID, name='debt_status'), default=PENDING, nullable=False)
    auto_notify = db.Column(db.Boolean, default=False)
    notify_periodicity = db.Column(db.Integer)  # days
    last_notification = db.Column(db.DateTime)
    active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User')
    payments = db.relationship('Payment', backref='debt', order_by='Payment.payment_date.desc()')
    collaterals = db.relationship('Collateral', backref='debt', order_by='Collateral.created_at.desc()')

    @property
    def active_payments(self):
        return [p for p in self.payments if p.active]

    @property
    def active_collaterals(self):
        return [c for c in self.collaterals if c.active]

    @property
    def total_paid(self):
        return sum((Decimal(p.amount) for p in self.active_payments), Decimal('0'))

    def valuation(self, now):
        return valuate(self.principal, self.interest_rate, self.due_date, now,
                       self.total_paid, self.status)


class Payment(db.Model):
    id = db.Column(db.String(50), primary_key=True, default=new_id)
    debt_id = db.Column(db.String(50), db.ForeignKey('debt.id'), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    payment_date = db.Column(db.DateTime, default=datetime.utcnow)
    description = db.Column(db.Text)
    active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Collateral(db.Model):
    id = db.Column(db.String(50), primary_key=True, default=new_id)
    debt_id = db.Column(db.String(50), db.ForeignKey('debt.id'), nullable=False)
    original_filename = db.Column(db.String(255), nullable=False)
    stored_filename = db.Column(db.String(300), nullable=False)
    mime_type = db.Column(db.String(100), nullable=False)
    size = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text)
    active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


# Notification history
class Notification(db.Model):
    id = db.Column(db.String(50), primary_key=True, default=new_id)
    user_id = db.Column(db.String(50), db.ForeignKey('user.id'), nullable=False)
    debtor_id = db.Column(db.String(50), db.ForeignKey('debtor.id'))
    debt_id = db.Column(db.String(50), db.ForeignKey('debt.id'))
    phone = db.Column(db.String(30), nullable=False)
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.Enum('PENDING', 'SENT', 'FAILED', name='notification_status'), default='PENDING', nullable=False)
    error_message = db.Column(db.Text)
    attempts = db.Column(db.Integer, default=0)
    sent_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User')
    debtor = db.relationship('Debtor')
    debt = db.relationship('Debt')


def valued_debts(debts, now):
    """Yield ``(debt, valuation)`` pairs, skipping debts whose stored data cannot be valued."""
    for debt in debts:
        try:
            yield debt, debt.valuation(now)
        except InvalidInput as e:
            logger.warning("Skipping debt %s with invalid data: %s", debt.id, e)
