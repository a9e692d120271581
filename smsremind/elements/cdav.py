#!/usr/bin/env python
from datetime import datetime
from datetime import timezone
from typing import ClassVar
from typing import Optional

from .base import BaseElement
from .base import NamedElement
from smsremind.lib.namespace import ns

utc_tz = timezone.utc


def _to_utc_date_string(ts: datetime) -> str:
    """coerce datetimes to UTC (naive timestamps are taken as localtime)"""
    return ts.astimezone(utc_tz).strftime("%Y%m%dT%H%M%SZ")


# Operations
class CalendarQuery(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar-query")


# Filters
class Filter(BaseElement):
    tag: ClassVar[str] = ns("C", "filter")


class CompFilter(NamedElement):
    tag: ClassVar[str] = ns("C", "comp-filter")


# Conditions
class TimeRange(BaseElement):
    tag: ClassVar[str] = ns("C", "time-range")

    def __init__(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> None:
        ## start and end should be an icalendar "date with UTC time",
        ## ref https://tools.ietf.org/html/rfc4791#section-9.9
        super(TimeRange, self).__init__()

        if start is not None:
            self.attributes["start"] = _to_utc_date_string(start)
        if end is not None:
            self.attributes["end"] = _to_utc_date_string(end)


# Components / Data
class CalendarData(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar-data")


# Properties
class CalendarHomeSet(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar-home-set")


# calendar resource type, see rfc4791, sec. 4.2
class Calendar(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar")
