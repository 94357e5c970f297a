import logging
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings
from twilio.rest import Client as TwilioClient

logger = logging.getLogger(__name__)


class NotificationConfigError(RuntimeError):
    pass


class NotificationBatchError(RuntimeError):
    """
    At least one SMS in a batch failed.

    The whole batch is reported as failed even if other sends went out.
    """


def build_client():
    """
    Build a Twilio client from settings.

    Returns:
        (client, from_number)
    """
    missing = [
        name
        for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER")
        if not getattr(settings, name, "")
    ]
    if missing:
        logger.error(f"Missing Twilio settings: {', '.join(missing)}")
        raise NotificationConfigError(f"Missing Twilio settings: {', '.join(missing)}")

    client = TwilioClient(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
    return client, settings.TWILIO_PHONE_NUMBER


def get_recipients():
    """Emergency contacts plus the dispatch line, blanks dropped."""
    numbers = list(settings.EMERGENCY_CONTACTS) + [settings.DISPATCH_NUMBER]
    return [n.strip() for n in numbers if n and n.strip()]


def build_message(user_name=None, location=None):
    return (
        f"EMERGENCY ALERT: {user_name or 'A user'} needs help! "
        f"Location: {location or 'Unknown'}. Please respond ASAP."
    )


def send_batch(client, from_number, recipients, body):
    """
    Send `body` to every recipient concurrently and wait for all of them.

    Returns the number of messages sent. Any single failure raises
    NotificationBatchError for the whole batch.
    """
    if not recipients:
        return 0

    with ThreadPoolExecutor(max_workers=len(recipients)) as pool:
        futures = [
            pool.submit(client.messages.create, body=body, from_=from_number, to=number)
            for number in recipients
        ]

    try:
        results = [f.result() for f in futures]
    except Exception as e:
        logger.error(f"Emergency SMS batch failed: {e}")
        raise NotificationBatchError(str(e)) from e

    for number, msg in zip(recipients, results):
        logger.info(f"Emergency SMS sent: sid={getattr(msg, 'sid', '<no-sid>')} to={number}")
    return len(results)
