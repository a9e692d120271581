#!/usr/bin/env python
# -*- encoding: utf-8 -*-
"""
Tests for the ASPSMS client.  No messages are sent, the http layer is
mocked.
"""
from unittest import mock

import pytest
import requests

from smsremind.aspsms import AspSmsClient
from smsremind.aspsms import ENDPOINT
from smsremind.lib.error import SmsError


def MockedResponse(status_code=200, json_data=None, text=None):
    resp = mock.MagicMock()
    resp.status_code = status_code
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
        resp.text = text or ""
    else:
        resp.json.return_value = json_data
        resp.text = text or str(json_data)
    return resp


class TestAspSmsClient:
    @mock.patch("smsremind.aspsms.requests.Session.get")
    def testSend(self, mocked):
        mocked.return_value = MockedResponse(json_data={"ErrorCode": 1})
        client = AspSmsClient("key", "pass", "Reminder")
        client.send("+436604670967", "Your next appointment is on 2024-03-01 at 09:00")

        args, kwargs = mocked.call_args
        assert args == (ENDPOINT,)
        assert kwargs["params"] == {
            "UserKey": "key",
            "Password": "pass",
            "MSISDN": "+436604670967",
            "MessageData": "Your next appointment is on 2024-03-01 at 09:00",
            "Originator": "Reminder",
        }
        assert kwargs["timeout"] == 5

    @mock.patch("smsremind.aspsms.requests.Session.get")
    def testNoOriginator(self, mocked):
        mocked.return_value = MockedResponse(json_data={"ErrorCode": "0"})
        AspSmsClient("key", "pass", "  ").send("+436604670967", "hi")
        assert "Originator" not in mocked.call_args[1]["params"]

    @mock.patch("smsremind.aspsms.requests.Session.get")
    def testErrorCode(self, mocked):
        mocked.return_value = MockedResponse(
            json_data={"ErrorCode": 3, "ErrorDescription": "Authorization failed"}
        )
        with pytest.raises(SmsError) as excinfo:
            AspSmsClient("key", "pass").send("+436604670967", "hi")
        assert "Authorization failed" in str(excinfo.value)
        assert "code: 3" in str(excinfo.value)

    @mock.patch("smsremind.aspsms.requests.Session.get")
    def testHttpError(self, mocked):
        mocked.return_value = MockedResponse(status_code=503, text="try later")
        with pytest.raises(SmsError) as excinfo:
            AspSmsClient("key", "pass").send("+436604670967", "hi")
        assert "503" in str(excinfo.value)

    @pytest.mark.parametrize(
        "json_data,text",
        [(None, "<html>oops</html>"), ({"Status": "OK"}, None), ({"ErrorCode": "x"}, None)],
    )
    @mock.patch("smsremind.aspsms.requests.Session.get")
    def testUnexpectedAnswer(self, mocked, json_data, text):
        mocked.return_value = MockedResponse(json_data=json_data, text=text)
        with pytest.raises(SmsError):
            AspSmsClient("key", "pass").send("+436604670967", "hi")

    @mock.patch("smsremind.aspsms.requests.Session.get")
    def testNetworkErrorIsPassedOn(self, mocked):
        mocked.side_effect = requests.ConnectionError("unreachable")
        with pytest.raises(requests.ConnectionError):
            AspSmsClient("key", "pass").send("+436604670967", "hi")

    @mock.patch("smsremind.aspsms.requests.Session.get")
    def testMissingCredentials(self, mocked):
        with pytest.raises(SmsError):
            AspSmsClient("", "pass").send("+436604670967", "hi")
        with pytest.raises(SmsError):
            AspSmsClient("key", "").send("+436604670967", "hi")
        mocked.assert_not_called()
