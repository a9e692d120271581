"""
I'm trying to be consistent with the terminology in the RFCs:

CalendarSet is a collection of Calendars (the calendar home set)
Calendar is a collection of calendar object resources
Principal is not a collection, but holds a CalendarSet.

Only what is needed to find the calendars of the logged-in user and
to pull the events of a time window out of them is implemented.
"""
import logging
from datetime import datetime
from datetime import tzinfo
from typing import Iterable
from typing import List
from typing import Optional
from typing import TYPE_CHECKING
from typing import Union

import requests
from lxml import etree

from .elements import cdav
from .elements import dav
from .elements.base import BaseElement
from .event import Event
from .event import parse_events
from .lib import error
from .lib.error import errmsg
from .lib.url import URL

if TYPE_CHECKING:
    from .davclient import DAVClient
    from .davclient import DAVResponse

log = logging.getLogger("smsremind")


class DAVObject:
    """
    Base class for the DAV objects.  Holds a client and the fully
    qualified URL of the resource.
    """

    url: Optional[URL] = None
    client: Optional["DAVClient"] = None
    name: Optional[str] = None

    def __init__(
        self,
        client: "DAVClient",
        url: Union[str, URL, None] = None,
        name: Optional[str] = None,
    ) -> None:
        self.client = client
        self.name = name
        if url is None:
            self.url = client.url
        else:
            self.url = client.url.resolve(url)

    def _query(self, root=None, depth=0, query_method="propfind") -> "DAVResponse":
        """
        This is an internal method for doing a query.  Non-2xx answers
        are raised as the error belonging to the query method.
        """
        body = ""
        if root is not None:
            body = etree.tostring(
                root.xmlelement(), encoding="utf-8", xml_declaration=True
            )
        ret = getattr(self.client, query_method)(str(self.url), body, depth)
        if ret.status == 404:
            raise error.NotFoundError(str(self.url), errmsg(ret))
        if ret.status >= 300:
            raise error.exception_by_method[query_method](str(self.url), errmsg(ret))
        return ret

    def _query_properties(
        self, props: Optional[List[BaseElement]] = None, depth: int = 0
    ) -> "DAVResponse":
        root = None
        if props:
            root = dav.Propfind() + (dav.Prop() + props)
        return self._query(root, depth)

    def get_href_property(self, prop: BaseElement) -> Optional[URL]:
        """
        Does a depth 0 PROPFIND for a property holding an href, like
        current-user-principal or calendar-home-set.  Returns the first
        href found, resolved against the URL the answer came from, or
        None if no response entry carries the property.
        """
        response = self._query_properties([prop], depth=0)
        found = response.expand_simple_props(
            multi_value_props=[prop], xpath=".//" + dav.Href.tag
        )
        base = response.url or self.url
        for href in found:
            for value in found[href][prop.tag]:
                return base.resolve(value)
        return None

    def __str__(self) -> str:
        return str(self.name or self.url)

    def __repr__(self) -> str:
        return "%s(%s)" % (self.__class__.__name__, self.url)


class Principal(DAVObject):
    """
    The principal of the logged-in user.  If no url is given, it's
    found by asking the root URL of the client for the
    current-user-principal.
    """

    def __init__(
        self, client: "DAVClient", url: Union[str, URL, None] = None
    ) -> None:
        super(Principal, self).__init__(client=client, url=url)
        self._calendar_home_set = None
        if url is None:
            cup = self.get_href_property(dav.CurrentUserPrincipal())
            if cup is None:
                raise error.PropfindError(
                    str(self.url), "current-user-principal not found"
                )
            log.debug("principal: %s", cup)
            self.url = cup

    @property
    def calendar_home_set(self) -> "CalendarSet":
        if self._calendar_home_set is None:
            home = self.get_href_property(cdav.CalendarHomeSet())
            if home is None:
                raise error.PropfindError(str(self.url), "calendar-home-set not found")
            log.debug("calendar home set: %s", home)
            self._calendar_home_set = CalendarSet(self.client, url=home)
        return self._calendar_home_set

    def calendars(self) -> List["Calendar"]:
        """
        Return the principal's calendars.
        """
        return self.calendar_home_set.calendars()


class CalendarSet(DAVObject):
    """
    A CalendarSet is a set of calendars.
    """

    def calendars(self) -> List["Calendar"]:
        """
        List all calendar collections in this set, that is all the
        children carrying the calendar resource type.

        Returns:
         * [Calendar(), ...]
        """
        props = [dav.DisplayName()]
        multiprops = [dav.ResourceType()]
        response = self._query_properties(props + multiprops, depth=1)
        properties = response.expand_simple_props(
            props=props, multi_value_props=multiprops
        )
        base = response.url or self.url

        cals = []
        for href in properties:
            if cdav.Calendar.tag not in properties[href][dav.ResourceType.tag]:
                continue
            name = (properties[href][dav.DisplayName.tag] or "").strip()
            cals.append(Calendar(self.client, url=base.resolve(href), name=name))
        return cals


class Calendar(DAVObject):
    """
    A calendar collection.  ``name`` is the display name.
    """

    def build_date_search_query(self, start: datetime, end: datetime) -> BaseElement:
        prop = dav.Prop() + [dav.GetEtag(), cdav.CalendarData()]
        vevent = cdav.CompFilter("VEVENT") + cdav.TimeRange(start, end)
        vcalendar = cdav.CompFilter("VCALENDAR") + vevent
        return cdav.CalendarQuery() + [prop, cdav.Filter() + vcalendar]

    def search(self, start: datetime, end: datetime) -> List[str]:
        """
        Sends a calendar-query REPORT for events overlapping [start, end)
        and returns the calendar data blobs delivered.
        """
        query = self.build_date_search_query(start, end)
        response = self._query(query, 1, "report")
        results = response.expand_simple_props([cdav.CalendarData()])
        blobs = []
        for href in results:
            data = results[href][cdav.CalendarData.tag]
            if data and data.strip():
                blobs.append(data.strip())
        return blobs

    def date_search(
        self, start: datetime, end: datetime, default_tz: tzinfo
    ) -> List[Event]:
        """
        Returns the events overlapping [start, end).  A blob that
        can't be parsed is logged and skipped; the other blobs are
        still returned.
        """
        events = []
        for blob in self.search(start, end):
            try:
                events.extend(parse_events(blob, default_tz))
            except error.EventParseError:
                log.error("calendar %s: skipping unparseable data", self, exc_info=True)
        return events


def matches(calendar: Calendar, names: Iterable[str]) -> bool:
    """Case insensitive match on the display name, no names matches everything"""
    names = list(names)
    if not names:
        return True
    display_name = (calendar.name or "").casefold()
    return any(display_name == name.casefold() for name in names)


def fetch_events(
    client: "DAVClient",
    start: datetime,
    end: datetime,
    calendar_names: Iterable[str] = (),
    default_tz: Optional[tzinfo] = None,
) -> List[Event]:
    """
    Finds the principal of the user, its calendar home set and the
    calendars in it, and returns the events overlapping [start, end)
    in the calendars with a matching display name.

    Failing to find the principal, the home set or the calendars is
    fatal.  A failing query towards one calendar is logged, and the
    other calendars are still queried.
    """
    if default_tz is None:
        default_tz = start.tzinfo

    calendar_names = list(calendar_names)
    principal = Principal(client)
    calendars = principal.calendars()
    log.info("found %d calendars", len(calendars))

    events = []
    for calendar in calendars:
        if not matches(calendar, calendar_names):
            log.debug("skipping calendar %s", calendar)
            continue
        try:
            found = calendar.date_search(start, end, default_tz)
        except (error.DAVError, requests.RequestException, etree.XMLSyntaxError):
            log.warning("query towards calendar %s failed", calendar, exc_info=True)
            continue
        log.debug("calendar %s: %d events", calendar, len(found))
        events.extend(found)
    return events
