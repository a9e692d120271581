#!/usr/bin/env python
import logging

__version__ = "0.3.0"

from .davclient import DAVClient
from .event import Event

## Silence notification of no default logging handler
log = logging.getLogger("smsremind")


class NullHandler(logging.Handler):
    def emit(self, record) -> None:
        pass


log.addHandler(NullHandler())

__all__ = ["__version__", "DAVClient", "Event"]
