"""
Conversions between the bytes going over the wire and text.  Servers
deliver bytes, and bodies may be given as either.
"""
from typing import Optional
from typing import Union


def wire_bytes(body: Union[str, bytes, None]) -> Optional[bytes]:
    """A request body as utf-8 with CRLF line endings"""
    if body is None:
        return None
    if isinstance(body, str):
        body = body.encode("utf-8")
    return body.replace(b"\r\n", b"\n").replace(b"\n", b"\r\n")


def as_text(data: Union[str, bytes, None], errors: str = "strict") -> Optional[str]:
    """
    utf-8 decoded text with LF line endings.  ``errors`` is passed on
    to ``bytes.decode``; use "replace" for text that only ends up in
    logs and error messages, error pages come in any charset.
    """
    if data is None:
        return None
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors=errors)
    return data.replace("\r\n", "\n")
