#!/usr/bin/env python
"""
The ``DAVClient`` class handles the basic communication with a
CalDAV server, the ``DAVResponse`` class handles the data returned
from the server.  Only PROPFIND and REPORT are needed to find the
calendars of a user and pull the events of a time window out of them.

Most calendar services hand out credentials for one host and then
redirect (or point, through the hrefs they return) to another host
where the data of the user actually lives.  The ``requests`` library
drops the ``Authorization`` header on redirects to another host, so
the session used here puts it back.
"""
import logging
from typing import Any
from typing import cast
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Tuple
from typing import Union

import requests
from lxml import etree
from lxml.etree import _Element
from requests.auth import HTTPBasicAuth
from requests.models import Response
from requests.structures import CaseInsensitiveDict

from smsremind import __version__
from smsremind.elements import dav
from smsremind.elements.base import BaseElement
from smsremind.lib import error
from smsremind.lib.text import as_text
from smsremind.lib.text import wire_bytes
from smsremind.lib.url import URL

log = logging.getLogger("smsremind")

DEFAULT_TIMEOUT = 30


class DAVResponse:
    """
    This class is a response from a DAV request.  It is instantiated from
    the DAVClient class.  Since we often get XML responses, it tries to
    parse it into `self.tree`.

    `self.url` is the URL the response was actually delivered from,
    after following redirects.  Relative hrefs in the response are to
    be resolved against it.
    """

    reason: str = ""
    tree: Optional[_Element] = None
    headers: CaseInsensitiveDict = None
    status: int = 0
    url: Optional[URL] = None

    def __init__(self, response: Response) -> None:
        self.headers = response.headers
        self.status = response.status_code
        self.url = URL.objectify(response.url) if response.url else None
        log.debug("response headers: " + str(self.headers))
        log.debug("response status: " + str(self.status))

        ## requests has already taken care of any gzip content-encoding
        self._raw = response.content

        content_type = self.headers.get("Content-Type", "")
        xml = ["text/xml", "application/xml"]
        no_xml = ["text/plain", "text/calendar", "application/octet-stream"]
        expect_xml = any((content_type.startswith(x) for x in xml))
        expect_no_xml = any((content_type.startswith(x) for x in no_xml))
        if (
            content_type
            and not expect_xml
            and not expect_no_xml
            and response.status_code < 400
        ):
            error.weirdness(f"Unexpected content type: {content_type}")
        try:
            content_length = int(self.headers["Content-Length"])
        except (KeyError, ValueError):
            content_length = -1
        if content_length == 0 or not self._raw:
            self._raw = ""
            self.tree = None
            log.debug("No content delivered")
        else:
            ## We cannot trust the content-type (iCloud and others), so
            ## we'll try to parse the content as XML no matter the
            ## content type given.
            try:
                self.tree = etree.XML(
                    self._raw,
                    parser=etree.XMLParser(remove_blank_text=True),
                )
            except etree.XMLSyntaxError:
                if expect_xml:
                    log.critical(
                        "Expected some valid XML from the server, but got this: \n"
                        + as_text(self._raw, errors="replace"),
                        exc_info=True,
                    )
                    raise
                log.debug(
                    "Response is not XML: %s", as_text(self._raw, errors="replace")
                )
            else:
                if log.isEnabledFor(logging.DEBUG):
                    log.debug(etree.tostring(self.tree, pretty_print=True))

        ## stray CRs may cause problems
        if isinstance(self._raw, bytes):
            self._raw = self._raw.replace(b"\r\n", b"\n")

        ## incidents with a response without a reason has been observed
        self.reason = getattr(response, "reason", "") or ""

    @property
    def raw(self) -> str:
        return as_text(self._raw, errors="replace")

    def _strip_to_multistatus(self):
        """
        The general format of inbound data is something like this:

        <xml><multistatus>
            <response>(...)</response>
            <response>(...)</response>
            (...)
        </multistatus></xml>

        but sometimes the multistatus and/or xml element is missing in
        self.tree.  We don't want to bother with the multistatus and
        xml tags, we just want the response list.
        """
        tree = self.tree
        if tree is None:
            return []
        if tree.tag == "xml" and len(tree) and tree[0].tag == dav.MultiStatus.tag:
            return tree[0]
        if tree.tag == dav.MultiStatus.tag:
            return tree
        return [tree]

    @staticmethod
    def status_ok(status: Optional[str]) -> bool:
        """
        status is a string like "HTTP/1.1 404 Not Found".  Anything in
        the 2xx range counts as a success.
        """
        if not status:
            return True
        parts = status.split()
        return len(parts) >= 2 and parts[1].startswith("2")

    def _parse_response(self, response) -> Tuple[Optional[str], List[_Element], Optional[str]]:
        """
        One response should contain one or zero status children, one
        href tag and zero or more propstats.  Find them and return
        those three fields.
        """
        status = None
        href: Optional[str] = None
        propstats: List[_Element] = []
        for elem in response:
            if elem.tag == dav.Status.tag:
                status = elem.text
            elif elem.tag == dav.Href.tag:
                if href is None and elem.text:
                    href = elem.text.strip()
            elif elem.tag == dav.PropStat.tag:
                propstats.append(elem)
            else:
                error.weirdness("unexpected element found in response", elem)
        return (href, propstats, status)

    def find_objects_and_props(self) -> Dict[str, Dict[str, _Element]]:
        """Check the response from the server, find hrefs and props
        from it and check statuses delivered.

        The parsed data will be put into self.objects, a dict {href:
        {proptag: prop_element}}.  Further parsing of the prop_element
        has to be done by the caller.  Props delivered with a non-2xx
        status (typically 404, "no such property on this resource")
        are left out, and so are responses carrying a non-2xx status
        of their own.
        """
        self.objects: Dict[str, Dict[str, _Element]] = {}

        for r in self._strip_to_multistatus():
            if r.tag != dav.Response.tag:
                error.weirdness("unexpected element in multistatus", r)
                continue

            (href, propstats, status) = self._parse_response(r)
            if href is None:
                error.weirdness("response without href", r)
                continue
            if not self.status_ok(status):
                log.debug("skipping response for %s: %s", href, status)
                continue
            if href not in self.objects:
                self.objects[href] = {}

            ## The properties may be delivered either in one
            ## propstat with multiple props or in multiple
            ## propstat
            for propstat in propstats:
                status = propstat.find(dav.Status.tag)
                if status is not None and not self.status_ok(status.text):
                    log.debug("skipping propstat for %s: %s", href, status.text)
                    continue
                for prop in propstat.iterfind(dav.Prop.tag):
                    for theprop in prop:
                        self.objects[href][theprop.tag] = theprop

        return self.objects

    def _expand_simple_prop(
        self, proptag, props_found, multi_value_allowed=False, xpath=None
    ):
        values = []
        if proptag in props_found:
            prop_xml = props_found[proptag]
            if not xpath and len(prop_xml) == 0:
                if prop_xml.text and prop_xml.text.strip():
                    values.append(prop_xml.text)
            else:
                _xpath = xpath if xpath else ".//*"
                for leaf in prop_xml.findall(_xpath):
                    if leaf.text and leaf.text.strip():
                        values.append(leaf.text.strip())
                    else:
                        values.append(leaf.tag)
        if multi_value_allowed:
            return values
        if not values:
            return None
        if len(values) > 1:
            error.weirdness(f"multiple values for {proptag}, using the first one")
        return values[0]

    def expand_simple_props(
        self,
        props: Optional[List[BaseElement]] = None,
        multi_value_props: Optional[List[BaseElement]] = None,
        xpath: Optional[str] = None,
    ) -> Dict[str, Dict[str, Any]]:
        """
        The find_objects_and_props() will stop at the xml element
        below the prop tag.  This method will expand those props into
        text (or, for multi value props, lists of text).

        Executes find_objects_and_props if not run already, then
        modifies and returns self.objects.
        """
        props = props or []
        multi_value_props = multi_value_props or []

        if not hasattr(self, "objects"):
            self.find_objects_and_props()
        for href in self.objects:
            props_found = self.objects[href]
            for prop in props:
                props_found[prop.tag] = self._expand_simple_prop(
                    prop.tag, props_found, xpath=xpath
                )
            for prop in multi_value_props:
                props_found[prop.tag] = self._expand_simple_prop(
                    prop.tag, props_found, xpath=xpath, multi_value_allowed=True
                )
        return cast(Dict[str, Dict[str, Any]], self.objects)


class AuthPreservingSession(requests.Session):
    """
    A requests session that keeps the Authorization header when
    following a redirect, also when the redirect goes to another host.
    (iCloud redirects to a pXX-caldav host holding the user data.)
    """

    def rebuild_auth(self, prepared_request, response) -> None:
        auth = response.request.headers.get("Authorization")
        super().rebuild_auth(prepared_request, response)
        if auth and "Authorization" not in prepared_request.headers:
            log.debug("keeping Authorization header on redirect to %s", prepared_request.url)
            prepared_request.headers["Authorization"] = auth


class DAVClient:
    """
    Basic client for webdav, uses the requests lib; gives access to
    the low-level operations towards the caldav server.

    Credentials are sent preemptively with basic auth on every
    request.
    """

    url: URL = None

    def __init__(
        self,
        url: Union[str, URL],
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        """
        Args:
          url: The base url of the server, without credentials
          username: The principal to authenticate as
          password: The secret of the principal
          timeout: Seconds to wait for the server, per request
          headers: Extra headers to send with every request
        """
        self.session = AuthPreservingSession()

        self.url = URL.objectify(url).unauth()
        log.debug("url: " + str(self.url))

        self.headers = CaseInsensitiveDict(
            {
                "User-Agent": "smsremind/" + __version__,
                "Content-Type": "application/xml; charset=utf-8",
                "Accept": "application/xml, text/xml, */*",
                "Accept-Encoding": "gzip",
            }
        )
        self.headers.update(headers or {})

        self.username = username
        self.auth = None
        if username is not None:
            ## non-ascii letters in passwords need to go out as utf-8
            self.auth = HTTPBasicAuth(
                username.encode("utf-8"), (password or "").encode("utf-8")
            )
        self.timeout = timeout

    def __enter__(self) -> "DAVClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def close(self) -> None:
        """
        Closes the DAVClient's session object
        """
        self.session.close()

    def propfind(
        self, url: Optional[str] = None, props: str = "", depth: int = 0
    ) -> DAVResponse:
        """
        Send a propfind request.

        Args:
            url: url for the root of the propfind.
            props: XML propfind request body
            depth: maximum recursion depth

        Returns:
            DAVResponse
        """
        return self.request(
            url or str(self.url), "PROPFIND", props, {"Depth": str(depth)}
        )

    def report(self, url: str, query: str = "", depth: int = 0) -> DAVResponse:
        """
        Send a report request.

        Args:
            url: url for the root of the report.
            query: XML request
            depth: maximum recursion depth

        Returns:
            DAVResponse
        """
        return self.request(url, "REPORT", query, {"Depth": str(depth)})

    def request(
        self,
        url: str,
        method: str = "GET",
        body: str = "",
        headers: Optional[Mapping[str, str]] = None,
    ) -> DAVResponse:
        """
        Actually sends the request.  Network errors and timeouts are
        passed on as requests exceptions, 401 and 403 are raised as
        :class:`AuthorizationError`.
        """
        combined_headers = self.headers.copy()
        combined_headers.update(headers or {})
        if (body is None or body == "") and "Content-Type" in combined_headers:
            del combined_headers["Content-Type"]

        url_obj = URL.objectify(url)

        log.debug(
            "sending request - method={0}, url={1}, headers={2}\nbody:\n{3}".format(
                method,
                str(url_obj),
                dict(combined_headers),
                as_text(body, errors="replace"),
            )
        )

        r = self.session.request(
            method,
            str(url_obj),
            data=wire_bytes(body),
            headers=combined_headers,
            auth=self.auth,
            timeout=self.timeout,
        )
        log.debug("server responded with %i %s" % (r.status_code, r.reason))

        if r.status_code in (
            requests.codes.forbidden,
            requests.codes.unauthorized,
        ):
            raise error.AuthorizationError(
                url=str(url_obj), reason=r.reason or "None given"
            )

        return DAVResponse(r)
