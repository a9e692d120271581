"""
Sending text messages through the ASPSMS WebAPI.
"""
import logging
from typing import Optional

import requests

from smsremind.lib.error import SmsError

log = logging.getLogger("smsremind")

ENDPOINT = "https://webapi.aspsms.com/SendSimpleSMS"


class AspSmsClient:
    """
    Minimal client for the SendSimpleSMS call: recipient, text and
    originator.  Nothing is retried.
    """

    def __init__(
        self,
        userkey: str,
        password: str,
        originator: str = "",
        timeout: Optional[float] = 5,
        endpoint: str = ENDPOINT,
    ) -> None:
        self.userkey = userkey
        self.password = password
        self.originator = originator
        self.timeout = timeout
        self.endpoint = endpoint
        self.session = requests.Session()

    def __repr__(self) -> str:
        return "AspSmsClient(%s)" % self.endpoint

    def send(self, recipient: str, text: str) -> None:
        """
        Sends text to recipient, an E.164 formatted number.  Raises
        SmsError if the message was not accepted, and the requests
        exceptions on network failures.
        """
        if not self.userkey:
            raise SmsError("missing ASPSMS userkey")
        if not self.password:
            raise SmsError("missing ASPSMS password")

        params = {
            "UserKey": self.userkey,
            "Password": self.password,
            "MSISDN": recipient,
            "MessageData": text,
        }
        originator = (self.originator or "").strip()
        if originator:
            params["Originator"] = originator

        log.debug("sending sms to %s", recipient)
        r = self.session.get(self.endpoint, params=params, timeout=self.timeout)
        body = r.text.strip()
        if r.status_code < 200 or r.status_code >= 300:
            raise SmsError(f"http {r.status_code}: {body}")

        ## The WebAPI returns an ErrorCode, 1 means OK
        try:
            result = r.json()
        except ValueError:
            result = None
        if not isinstance(result, dict) or "ErrorCode" not in result:
            raise SmsError(f"unexpected ASPSMS response: {body}")

        try:
            code = int(result["ErrorCode"])
        except (TypeError, ValueError):
            raise SmsError(f"unexpected ASPSMS response: {body}")
        if code in (0, 1):
            return
        raise SmsError(
            "aspsms error: %s (code: %d)" % (result.get("ErrorDescription", ""), code)
        )
