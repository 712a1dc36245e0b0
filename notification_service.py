import logging
import time
from collections import OrderedDict
from datetime import datetime

from valuation import (
    InvalidInput, OVERDUE, PAID, days_overdue, days_since, days_until_due,
)

logger = logging.getLogger(__name__)

SUMMARY_LIST_LIMIT = 10


def effective_periodicity(status, configured_periodicity, overdue_periodicity=2):
    """Overdue debts are chased on a fixed short cycle regardless of their setting."""
    if status == OVERDUE:
        return overdue_periodicity
    return configured_periodicity


def is_eligible(last_notification, now, periodicity):
    if last_notification is None:
        return True
    if periodicity is None:
        return False
    return days_since(last_notification, now) >= periodicity


def _plural(count, singular, plural):
    return singular if count == 1 else plural


class NotificationService:
    def __init__(self, repository, sender, clock=datetime.utcnow, sleep=time.sleep,
                 currency='MZN', tag='#DEBTTRACKER', send_interval=5, summary_interval=3,
                 overdue_periodicity=2, send_summary=True):
        self.repository = repository
        self.sender = sender
        self.clock = clock
        self.sleep = sleep
        self.currency = currency
        self.tag = tag
        self.send_interval = send_interval
        self.summary_interval = summary_interval
        self.overdue_periodicity = overdue_periodicity
        self.send_summary = send_summary

    @classmethod
    def from_config(cls, config, repository, sender, **kwargs):
        options = dict(
            currency=config['CURRENCY_CODE'],
            tag=config['MESSAGE_TAG'],
            send_interval=config['NOTIFICATION_SEND_INTERVAL'],
            summary_interval=config['SUMMARY_SEND_INTERVAL'],
            overdue_periodicity=config['OVERDUE_NOTIFY_PERIODICITY'],
            send_summary=config['SEND_DISPATCH_SUMMARY'],
        )
        options.update(kwargs)
        return cls(repository, sender, **options)

    # Formatting

    def format_amount(self, amount):
        return f"{self.currency} {amount:,.2f}"

    @staticmethod
    def format_date(value):
        return value.strftime('%d %B %Y')

    def with_tag(self, message):
        message = message.strip()
        if self.tag not in message:
            message += f"\n\n{self.tag}"
        return message

    def render_message(self, debt, now, valuation=None):
        """Build the reminder text for ``debt`` as seen at ``now``."""
        valuation = valuation or debt.valuation(now)
        name = debt.debtor.name
        due = self.format_date(debt.due_date)
        amount = self.format_amount(valuation.remaining_amount)

        if valuation.status == OVERDUE:
            days = max(days_overdue(debt.due_date, now), 1)
            return (
                f"Hello {name},\n\n"
                f"This is a reminder about your debt that was due on {due}.\n\n"
                f"⚠️ Overdue for {days} {_plural(days, 'day', 'days')}\n"
                f"💰 Amount due: {amount}\n\n"
                f"Please get in touch to settle your balance.\n\n"
                f"Thank you!\n\n"
                f"{self.tag}"
            )

        days = days_until_due(debt.due_date, now)
        return (
            f"Hello {name},\n\n"
            f"This is a reminder that your debt is due soon.\n\n"
            f"📅 Due date: {due}\n"
            f"⏰ {days} {_plural(days, 'day', 'days')} remaining\n"
            f"💰 Amount due: {amount}\n\n"
            f"Please arrange payment by the due date.\n\n"
            f"Thank you!\n\n"
            f"{self.tag}"
        )

    # Delivery

    def is_due_for_reminder(self, debt, status, now):
        periodicity = effective_periodicity(status, debt.notify_periodicity, self.overdue_periodicity)
        return is_eligible(debt.last_notification, now, periodicity)

    def deliver(self, debt, message):
        """Record, send and settle one reminder for ``debt``."""
        phone = debt.debtor.phone
        notification = self.repository.create_notification(
            user_id=debt.user_id,
            phone=phone,
            message=message,
            debtor_id=debt.debtor_id,
            debt_id=debt.id,
        )

        try:
            result = self.sender.send_message(phone, message)
        except Exception as e:
            logger.exception("Unexpected error sending notification %s", notification.id)
            self.repository.mark_notification_failed(notification, str(e) or type(e).__name__, 0)
            return notification

        if result.success:
            sent_at = self.clock()
            self.repository.mark_notification_sent(notification, result.attempts, sent_at)
            self.repository.touch_last_notification(debt, sent_at)
        else:
            self.repository.mark_notification_failed(notification, result.error, result.attempts)
        return notification

    def send_manual(self, debt, custom_message=None):
        """Send a reminder now, outside the periodic cycle."""
        if debt.status == PAID:
            raise InvalidInput('Debt is already paid')
        if not debt.debtor or not debt.debtor.phone:
            raise InvalidInput('Debtor has no phone number')

        if custom_message and custom_message.strip():
            message = self.with_tag(custom_message)
        else:
            message = self.render_message(debt, self.clock())
        return self.deliver(debt, message)

    # Periodic cycle

    def run_dispatch_cycle(self, stop_event=None):
        """Process every auto-notify debt once; returns counters for the cycle."""
        now = self.clock()
        logger.info("Starting automatic notification dispatch")

        debts = self.repository.find_auto_notify_debts()
        logger.info("Found %s debts with automatic notification", len(debts))

        stats = {'sent': 0, 'failed': 0, 'skipped': 0, 'invalid': 0, 'summaries': 0}
        processed = OrderedDict()
        delivered_any = False

        for debt in debts:
            if stop_event is not None and stop_event.is_set():
                logger.info("Dispatch cancelled before debt %s", debt.id)
                break

            try:
                valuation = debt.valuation(now)
            except InvalidInput as e:
                logger.warning("Debt %s has invalid data, skipping: %s", debt.id, e)
                stats['invalid'] += 1
                continue

            if not self.is_due_for_reminder(debt, valuation.status, now):
                stats['skipped'] += 1
                continue

            if not debt.debtor or not debt.debtor.phone:
                logger.warning("Debt %s has no debtor phone, skipping", debt.id)
                stats['invalid'] += 1
                continue

            if delivered_any:
                self.sleep(self.send_interval)
            delivered_any = True

            try:
                notification = self.deliver(debt, self.render_message(debt, now, valuation))
            except Exception:
                logger.exception("Unexpected error notifying debt %s", debt.id)
                self.repository.rollback()
                stats['failed'] += 1
                continue

            outcome = processed.setdefault(debt.user_id, {'sent': [], 'failed': 0})
            if notification.status == 'SENT':
                stats['sent'] += 1
                outcome['sent'].append((debt.debtor.name, valuation.remaining_amount))
            else:
                stats['failed'] += 1
                outcome['failed'] += 1

        logger.info(
            "Dispatch finished: %s sent, %s skipped, %s failed, %s invalid",
            stats['sent'], stats['skipped'], stats['failed'], stats['invalid'],
        )

        if self.send_summary and processed:
            stats['summaries'] = self.send_user_summaries(processed)
        return stats

    def render_summary(self, user, outcome, now):
        sent = outcome['sent']
        failed = outcome['failed']

        message = f"Hello {user.name}! 👋\n\n"
        message += f"📊 *Notification summary - {now.strftime('%H:%M')}*\n\n"

        if sent:
            message += f"✅ *{len(sent)}* {_plural(len(sent), 'debtor', 'debtors')} notified successfully:\n\n"
            for name, remaining in sent[:SUMMARY_LIST_LIMIT]:
                message += f"• {name} - {self.format_amount(remaining)}\n"
            if len(sent) > SUMMARY_LIST_LIMIT:
                message += f"... and {len(sent) - SUMMARY_LIST_LIMIT} more\n"

        if failed:
            message += f"\n❌ *{failed}* {_plural(failed, 'delivery', 'deliveries')} failed\n"

        message += "\n💼 Keep following up on your collections in the system!\n\n"
        message += self.tag
        return message

    def send_user_summaries(self, processed):
        """Send each owner one WhatsApp summary of the cycle; returns how many went out."""
        delivered = 0
        now = self.clock()

        for index, (user_id, outcome) in enumerate(processed.items()):
            user = self.repository.get_user(user_id)
            if not user or not user.phone:
                logger.warning("User %s has no phone, skipping summary", user_id)
                continue

            if index:
                self.sleep(self.summary_interval)

            result = self.sender.send_message(user.phone, self.render_summary(user, outcome, now))
            if result.success:
                delivered += 1
            else:
                logger.warning("Summary for user %s not delivered: %s", user_id, result.error)
        return delivered
