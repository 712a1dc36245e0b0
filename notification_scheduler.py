#!/usr/bin/env python3
"""
Notification Scheduler - Runs the daily WhatsApp reminder dispatch
"""

import logging
import signal
import threading

import schedule

from app import app
from config import configure_logging

logger = logging.getLogger(__name__)

stop_event = threading.Event()


def run_notification_dispatch():
    """Run one dispatch cycle within Flask app context"""
    with app.app_context():
        try:
            stats = app.extensions['notification_service'].run_dispatch_cycle(stop_event=stop_event)
            logger.info("Notification dispatch completed: %s", stats)
        except Exception:
            logger.exception("Error running notification dispatch")


def _request_stop(signum, frame):
    logger.info("Stop requested, finishing current delivery")
    stop_event.set()


def main():
    configure_logging()
    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)

    dispatch_time = app.config['NOTIFICATION_DISPATCH_TIME']
    schedule.every().day.at(dispatch_time).do(run_notification_dispatch)
    logger.info("Notification scheduler started, daily dispatch at %s", dispatch_time)

    while not stop_event.is_set():
        schedule.run_pending()
        stop_event.wait(60)  # Check every minute

    schedule.clear()
    logger.info("Notification scheduler stopped")


if __name__ == '__main__':
    main()
