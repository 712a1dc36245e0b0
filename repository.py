from datetime import datetime

from sqlalchemy.orm import joinedload, selectinload

from models import Debt, Notification, User
from valuation import PAID


class CollectionsRepository:
    """Persistence handle shared by the notification service and the API.

    Wraps a SQLAlchemy session; each write commits immediately so that a
    failure on one debt never loses the records of the debts before it.
    """

    def __init__(self, session):
        self.session = session

    def find_auto_notify_debts(self):
        return (
            self.session.query(Debt)
            .options(joinedload(Debt.debtor), selectinload(Debt.payments))
            .filter(
                Debt.active.is_(True),
                Debt.auto_notify.is_(True),
                Debt.status != PAID,
                Debt.notify_periodicity.isnot(None),
            )
            .order_by(Debt.due_date.asc())
            .all()
        )

    def get_user(self, user_id):
        return self.session.get(User, user_id)

    def create_notification(self, user_id, phone, message, debtor_id=None, debt_id=None):
        notification = Notification(
            user_id=user_id,
            debtor_id=debtor_id,
            debt_id=debt_id,
            phone=phone,
            message=message,
            status='PENDING',
        )
        self.session.add(notification)
        self.session.commit()
        return notification

    def mark_notification_sent(self, notification, attempts, sent_at=None):
        notification.status = 'SENT'
        notification.attempts = attempts
        notification.error_message = None
        notification.sent_at = sent_at or datetime.utcnow()
        self.session.commit()
        return notification

    def mark_notification_failed(self, notification, error, attempts):
        notification.status = 'FAILED'
        notification.attempts = attempts
        notification.error_message = error
        notification.sent_at = None
        self.session.commit()
        return notification

    def touch_last_notification(self, debt, when):
        debt.last_notification = when
        self.session.commit()

    def update_debt_valuation(self, debt, amount, status):
        debt.current_amount = amount
        debt.status = status
        self.session.commit()

    def deactivate_payment(self, payment):
        payment.active = False
        self.session.commit()

    def rollback(self):
        self.session.rollback()
