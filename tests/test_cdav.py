import datetime
from zoneinfo import ZoneInfo

import pytest
from lxml import etree

from smsremind.elements import cdav
from smsremind.elements import dav
from smsremind.elements.cdav import _to_utc_date_string
from smsremind.elements.cdav import CalendarQuery

SOMEWHERE_REMOTE = ZoneInfo("America/Noronha")  # UTC-2 and no DST


def test_element():
    cq = CalendarQuery()
    assert str(cq).startswith("<?xml")
    assert not "xml" in repr(cq)
    assert "CalendarQuery" in repr(cq)
    assert "calendar-query" in str(cq)


def test_to_utc_date_string_utc():
    input = datetime.datetime(2019, 5, 14, 21, 10, 23, 23, tzinfo=datetime.timezone.utc)
    assert _to_utc_date_string(input) == "20190514T211023Z"


def test_to_utc_date_string_dt_with_zoneinfo():
    input = datetime.datetime(2019, 5, 14, 21, 10, 23, 23, tzinfo=SOMEWHERE_REMOTE)
    assert _to_utc_date_string(input) == "20190514T231023Z"


def test_to_utc_date_string_vienna_midnight():
    input = datetime.datetime(2024, 3, 1, tzinfo=ZoneInfo("Europe/Vienna"))
    assert _to_utc_date_string(input) == "20240229T230000Z"


def test_time_range():
    tr = cdav.TimeRange(
        datetime.datetime(2024, 7, 1, tzinfo=ZoneInfo("Europe/Vienna")),
        datetime.datetime(2024, 7, 2, tzinfo=ZoneInfo("Europe/Vienna")),
    )
    assert tr.attributes == {"start": "20240630T220000Z", "end": "20240701T220000Z"}


def test_comp_filter_needs_name():
    assert cdav.CompFilter("VEVENT").xmlelement().get("name") == "VEVENT"
    with pytest.raises(ValueError):
        cdav.CompFilter("")


def test_propfind_body():
    body = dav.Propfind() + (dav.Prop() + [dav.DisplayName(), dav.ResourceType()])
    root = body.xmlelement()
    assert root.tag == "{DAV:}propfind"
    assert [c.tag for c in root[0]] == ["{DAV:}displayname", "{DAV:}resourcetype"]
    ## the nsmap gives short prefixes on the wire
    assert b"<D:propfind" in etree.tostring(root)
