#!/usr/bin/env python
"""
Turns the calendar data delivered by the server into ``Event``
objects.

The content lines are split up by the icalendar parser, but the
properties are not run through the icalendar type conversion.
Servers are sloppy with time zones (unknown or proprietary TZIDs,
missing VTIMEZONE components), and the icalendar library silently
drops values it can't convert.  Here a DTSTART/DTEND is resolved from
its textual form, and one that can't be understood is an error.
Every timestamp handed out of this module is an absolute point in
time, so that all-day and timed events can be compared and formatted
the same way.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from datetime import tzinfo
from typing import Iterator
from typing import List
from typing import Optional
from typing import Tuple
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

from icalendar.parser import Contentlines
from icalendar.prop import vText

from smsremind.lib.error import EventParseError
from smsremind.lib.text import as_text

log = logging.getLogger("smsremind")

MISSING_UID = "(missing-uid)"

_date_re = re.compile(r"^\d{8}$")

## strptime doesn't enforce field widths, so the format is picked by
## the exact shape of the value
_datetime_formats = (
    (re.compile(r"^\d{8}T\d{6}$"), "%Y%m%dT%H%M%S"),
    (re.compile(r"^\d{8}T\d{4}$"), "%Y%m%dT%H%M"),
)


def _strptime(value: str) -> Optional[datetime]:
    for pattern, fmt in _datetime_formats:
        if pattern.match(value):
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                return None
    return None


@dataclass(frozen=True)
class Event:
    """
    One VEVENT, with start and end resolved to timezone aware
    datetimes.  Events are built fresh on every query and never
    modified.
    """

    uid: str
    start: datetime
    end: datetime
    summary: str = ""
    description: str = ""
    comment: str = ""

    @property
    def start_date(self) -> str:
        return self.start.strftime("%Y-%m-%d")

    @property
    def start_time(self) -> str:
        return self.start.strftime("%H:%M")

    @property
    def end_time(self) -> str:
        return self.end.strftime("%H:%M")

    def __str__(self) -> str:
        properties = []
        if self.summary:
            properties.append(f"summary: {self.summary}")
        if self.description:
            properties.append(f"description: {self.description}")
        if self.comment:
            properties.append(f"comment: {self.comment}")
        return "%s %s - %s (%s)" % (
            self.start_date,
            self.start_time,
            self.end_time,
            ", ".join(properties),
        )


@dataclass(frozen=True)
class Property:
    name: str
    params: dict
    value: str

    def param(self, key: str) -> str:
        value = self.params.get(key)
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            value = value[0] if value else ""
        return str(value).strip()


@dataclass(frozen=True)
class Component:
    """
    A calendar component with its own properties (the properties of
    nested components, like a VALARM in a VEVENT, are not included).
    ``name`` tells what kind of component it is.
    """

    name: str
    properties: Tuple[Property, ...]

    def first(self, name: str) -> Optional[Property]:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def text(self, name: str) -> str:
        prop = self.first(name)
        if prop is None:
            return ""
        return str(vText.from_ical(prop.value)).strip()


def load_timezone(name: str) -> Optional[tzinfo]:
    """Returns the named zone, or None if the name is not known"""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def parse_ical_datetime(
    value: str, params, default_tz: tzinfo
) -> Tuple[datetime, bool]:
    """
    Resolves the textual value of a DTSTART/DTEND property.

    Returns the timestamp and a flag telling if the value was a date
    (an all-day event) rather than a date-time.

    * ``VALUE=DATE`` or a bare ``YYYYMMDD`` gives midnight in ``default_tz``
    * a trailing ``Z`` gives UTC, no matter what TZID says
    * a known ``TZID`` is used, an unknown one falls back to ``default_tz``
    * a floating time is taken to be in ``default_tz``

    Raises EventParseError if the value doesn't look like any of those.
    """
    v = (value or "").strip()
    if not v:
        raise EventParseError("empty datetime")

    prop = Property("", params or {}, v)
    value_type = prop.param("VALUE").upper()
    tzid = prop.param("TZID")

    if value_type == "DATE" or (len(v) == 8 and "T" not in v):
        if not _date_re.match(v):
            raise EventParseError(f"unsupported date: {v!r}")
        try:
            day = datetime.strptime(v, "%Y%m%d")
        except ValueError as e:
            raise EventParseError(f"unsupported date: {v!r}") from e
        return day.replace(tzinfo=default_tz), True

    if v.endswith("Z"):
        ts = _strptime(v[:-1])
        if ts is None:
            raise EventParseError(f"unsupported UTC datetime: {v!r}")
        return ts.replace(tzinfo=timezone.utc), False

    tz = default_tz
    if tzid:
        tz = load_timezone(tzid)
        if tz is None:
            log.debug("unknown TZID %s, using %s", tzid, default_tz)
            tz = default_tz

    ts = _strptime(v)
    if ts is None:
        raise EventParseError(f"unsupported datetime: {v!r}")
    return ts.replace(tzinfo=tz), False


def components(blob) -> Iterator[Component]:
    """
    Yields every component found in the blob, innermost first (a
    VALARM comes before the VEVENT holding it).  The blob may hold
    several VCALENDARs.
    """
    try:
        lines = Contentlines.from_ical(as_text(blob))
    except ValueError as e:  # UnicodeDecodeError included
        raise EventParseError(f"unable to parse calendar data: {e}") from e

    ## stack of (component name, list of properties)
    stack: List[Tuple[str, List[Property]]] = []
    for line in lines:
        if not line:
            continue
        try:
            name, params, value = line.parts()
        except ValueError as e:
            raise EventParseError(str(e)) from e
        name = name.upper()
        if name == "BEGIN":
            stack.append((value.upper(), []))
        elif name == "END":
            if not stack or stack[-1][0] != value.upper():
                raise EventParseError(f"unexpected END:{value}")
            comp_name, props = stack.pop()
            yield Component(comp_name, tuple(props))
        elif stack:
            stack[-1][1].append(Property(name, dict(params), value))
        else:
            raise EventParseError(f"property {name} outside of any component")
    if stack:
        raise EventParseError(f"missing END:{stack[-1][0]}")


def event_from_component(component: Component, default_tz: tzinfo) -> Optional[Event]:
    """
    Builds an Event from a VEVENT component.  Returns None if there is
    no DTSTART.
    """
    uid = component.text("UID") or MISSING_UID

    dtstart = component.first("DTSTART")
    if dtstart is None:
        log.debug("skipping event %s without DTSTART", uid)
        return None
    try:
        start, start_is_date = parse_ical_datetime(
            dtstart.value, dtstart.params, default_tz
        )
    except EventParseError as e:
        raise EventParseError(f"parse DTSTART for {uid}: {e}") from e

    dtend = component.first("DTEND")
    if dtend is not None:
        try:
            end, _ = parse_ical_datetime(dtend.value, dtend.params, default_tz)
        except EventParseError as e:
            raise EventParseError(f"parse DTEND for {uid}: {e}") from e
    elif start_is_date:
        ## 24 elapsed hours, also across a DST change
        end = (start.astimezone(timezone.utc) + timedelta(hours=24)).astimezone(
            start.tzinfo
        )
    else:
        end = start

    return Event(
        uid=uid,
        start=start,
        end=end,
        summary=component.text("SUMMARY"),
        description=component.text("DESCRIPTION"),
        comment=component.text("COMMENT"),
    )


def parse_events(blob, default_tz: tzinfo) -> List[Event]:
    """
    Parses one calendar-data blob and returns an Event for each VEVENT
    with a start.  Other components (VTODO, VTIMEZONE, ...) are
    ignored.

    A malformed date fails the whole blob with EventParseError.
    """
    events = []
    for component in components(blob):
        if component.name != "VEVENT":
            continue
        event = event_from_component(component, default_tz)
        if event is not None:
            events.append(event)
    return events
