#!/usr/bin/env python
import logging
import os
from collections import defaultdict
from typing import Dict
from typing import Optional
from typing import Type

from lxml import etree

from smsremind import __version__

## Environmental variables prepended with "PYTHON_SMSREMIND" are used for debug purposes,
## one of DEBUG, DEVELOPMENT, PRODUCTION
debugmode = os.environ.get("PYTHON_SMSREMIND_DEBUGMODE")
if not debugmode:
    if "dev" in __version__:
        debugmode = "DEVELOPMENT"
    else:
        debugmode = "PRODUCTION"

log = logging.getLogger("smsremind")
if debugmode.startswith("DEBUG"):
    log.setLevel(logging.DEBUG)


def errmsg(r) -> str:
    """Formats an error response for the exception message"""
    return "%s %s\n\n%s" % (r.status, r.reason, r.raw)


def _describe(thing) -> str:
    if hasattr(thing, "xmlelement"):
        thing = thing.xmlelement()
    if isinstance(thing, etree._Element):
        return etree.tostring(thing, pretty_print=True).decode("utf-8")
    return str(thing)


def weirdness(*reasons) -> None:
    """Logs a server answer that deviates from what the RFCs say"""
    reason = " : ".join([_describe(x) for x in reasons])
    log.warning(f"Deviation from expectations found: {reason}")


class DAVError(Exception):
    url: Optional[str] = None
    reason: str = "no reason"

    def __init__(self, url: Optional[str] = None, reason: Optional[str] = None) -> None:
        if url:
            self.url = url
        if reason:
            self.reason = reason

    def __str__(self) -> str:
        return "%s at '%s', reason %s" % (
            self.__class__.__name__,
            self.url,
            self.reason,
        )


class AuthorizationError(DAVError):
    """
    The server answered 401 or 403.  The url property will contain
    the url in question, the reason property will contain the excuse
    the server sent.
    """

    pass


class PropfindError(DAVError):
    pass


class ReportError(DAVError):
    pass


class NotFoundError(DAVError):
    pass


## the error to raise for a non-2xx answer to a query, by query method
exception_by_method: Dict[str, Type[DAVError]] = defaultdict(
    lambda: DAVError, {"report": ReportError, "propfind": PropfindError}
)


class ConfigurationError(ValueError):
    """Malformed connection string, unknown timezone, broken config file"""

    pass


class EventParseError(ValueError):
    """A date or date-time value in the calendar data could not be understood"""

    pass


class LockError(Exception):
    pass


class LockHeldError(LockError):
    """
    Another run holds a fresh lock.  This is not a failure from the
    user's point of view; the caller is expected to exit quietly.
    """

    def __init__(self, pid: int, age) -> None:
        self.pid = pid
        self.age = age
        super().__init__(f"lock already held (pid={pid}, age={age})")


class StoreError(Exception):
    pass


class SmsError(Exception):
    pass
