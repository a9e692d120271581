"""
One run of the reminder: find the events of the target day and send
one message per event, never twice for the same event and lead time.
"""
import logging
import sys
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import tzinfo
from typing import Callable
from typing import Optional
from typing import TextIO
from typing import Tuple

from smsremind.aspsms import AspSmsClient
from smsremind.collection import fetch_events
from smsremind.config import Config
from smsremind.davclient import DAVClient
from smsremind.event import Event
from smsremind.idempotency import acquire_lock
from smsremind.idempotency import Store
from smsremind.lib.error import ConfigurationError
from smsremind.lib.error import LockHeldError
from smsremind.lib.timestamps import rfc3339
from smsremind.lib.url import parse_connection_url
from smsremind.phonenumber import extract_number as default_extract_number

log = logging.getLogger("smsremind")

SendFunction = Callable[[str, str], None]
ExtractFunction = Callable[[str], Optional[str]]


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time(), tzinfo=tz)


def end_of_day(day: date, tz: tzinfo) -> datetime:
    """The start of the following day"""
    return start_of_day(day + timedelta(days=1), tz)


def day_window(now: datetime, offset: int, tz: tzinfo) -> Tuple[datetime, datetime]:
    day = now.astimezone(tz).date() + timedelta(days=offset)
    return start_of_day(day, tz), end_of_day(day, tz)


def event_message_key(event: Event, offset: int) -> str:
    """
    The key a sent reminder is recorded under.  It's the same for the
    same event, start time and lead time on every run.
    """
    return "%s|%s|T-%dd" % (event.uid, rfc3339(event.start), offset)


def render_message(template: str, event: Event) -> str:
    """
    Fills in ``{start_date}``, ``{start_time}``, ``{end_time}``,
    ``{summary}``, ``{description}``, ``{comment}`` and ``{uid}``.
    """
    try:
        return template.format(
            start_date=event.start_date,
            start_time=event.start_time,
            end_time=event.end_time,
            summary=event.summary,
            description=event.description,
            comment=event.comment,
            uid=event.uid,
        )
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigurationError(f"invalid sms template {template!r}: {e}") from e


def event_phone_number(event: Event, extract: ExtractFunction) -> Optional[str]:
    for text in (event.summary, event.description, event.comment):
        number = extract(text)
        if number:
            return number
    return None


def run(
    config: Config,
    send: Optional[SendFunction] = None,
    extract_number: Optional[ExtractFunction] = None,
    fetch: Callable = fetch_events,
    now: Optional[datetime] = None,
    out: Optional[TextIO] = None,
) -> int:
    """
    Sends the reminders for the day ``config.offset`` days from now.

    Returns 0, also when another run holds the lock.  Configuration,
    protocol, state and delivery errors are raised.  The lock is
    released on every way out.
    """
    out = out or sys.stdout
    tz = config.load_timezone()
    ## fail on a broken template before touching any state
    render_message(
        config.sms_template,
        Event(uid="", start=datetime.now(tz), end=datetime.now(tz)),
    )
    if extract_number is None:

        def extract_number(text):
            return default_extract_number(text, config.region)

    try:
        lock = acquire_lock(config.lock_path, config.lock_timeout)
    except LockHeldError as e:
        log.info("another run is active: %s", e)
        return 0

    try:
        store = Store.open(config.store_path)
        credentials = parse_connection_url(config.caldav)
        if send is None:
            send = AspSmsClient(
                config.aspsms_userkey,
                config.aspsms_password,
                config.sender,
            ).send

        start, end = day_window(now or datetime.now(tz), config.offset, tz)
        log.info("looking for events between %s and %s", start, end)

        with DAVClient(
            credentials.base_url,
            username=credentials.username,
            password=credentials.password,
            timeout=config.timeout,
        ) as client:
            events = fetch(client, start, end, config.calendars, tz)

        with store:
            for event in events:
                number = event_phone_number(event, extract_number)
                if not number:
                    log.debug("no phone number in %s", event)
                    continue

                key = event_message_key(event, config.offset)
                if store.exists(key):
                    log.debug("already sent: %s", key)
                    continue

                message = render_message(config.sms_template, event)
                out.write("remind %s %s: %s\n" % (event.summary, number, message))
                if config.dry_run:
                    continue

                send(number, message)
                store.mark(key)
                log.info("sent reminder for %s to %s", event.uid, number)
    finally:
        lock.release()
    return 0
