from typing import Dict

DAV = "DAV:"
CALDAV = "urn:ietf:params:xml:ns:caldav"

## prefixes used when serializing request bodies
nsmap: Dict[str, str] = {"D": DAV, "C": CALDAV}


def ns(prefix: str, tag: str) -> str:
    """The Clark notation of a tag, ``{DAV:}href``"""
    return "{%s}%s" % (nsmap[prefix], tag)
