#!/usr/bin/env python
# -*- encoding: utf-8 -*-
import pytest

from smsremind.phonenumber import extract_number
from smsremind.phonenumber import text_phone_number


@pytest.mark.parametrize(
    "text",
    [
        "+436604670967",
        "06604670967",
        "0660 4670967",
        "0660 46 70 967",
        "0660 (4670967)",
        "43 660 4670967",
        "+43 660 4670967",
    ],
)
def test_extract_number(text):
    assert extract_number(text) == "+436604670967"


def test_number_on_second_line():
    text = "Checkup\n0660 4670967\nroom 3"
    assert extract_number(text) == "+436604670967"


def test_first_number_wins():
    text = "+43 660 4670967\n+43 664 1234567"
    assert extract_number(text) == "+436604670967"


def test_other_region():
    assert extract_number("030 1234567", region="DE") == "+49301234567"


@pytest.mark.parametrize("text", ["", "Checkup", "room 3", "call back later"])
def test_no_number(text):
    assert extract_number(text) is None
    assert text_phone_number(text) is None
