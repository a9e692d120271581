"""
Finding the phone number to send a reminder to in the text of an
event.  The numbering plan parsing is done by the phonenumbers
library; numbers written without country code are taken to be in
``region``.
"""
import logging
from typing import Optional

import phonenumbers


log = logging.getLogger("smsremind")

DEFAULT_REGION = "AT"


def format_number(number: phonenumbers.PhoneNumber) -> str:
    return phonenumbers.format_number(number, phonenumbers.PhoneNumberFormat.E164)


def text_phone_number(
    text: str, region: str = DEFAULT_REGION
) -> Optional[phonenumbers.PhoneNumber]:
    """
    Tries each line of text on its own and returns the first number
    found, or None.
    """
    for line in (text or "").split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            number = phonenumbers.parse(line, region)
        except phonenumbers.NumberParseException:
            continue
        if phonenumbers.is_possible_number(number):
            return number
    return None


def extract_number(text: str, region: str = DEFAULT_REGION) -> Optional[str]:
    """The E.164 form of the first phone number in text, or None"""
    number = text_phone_number(text, region)
    if number is None:
        return None
    return format_number(number)
