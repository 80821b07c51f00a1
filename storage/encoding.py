"""
Storage - Text Encoding Boundary.

Validator display names are free-form on-chain strings and are stored
base64-encoded. Encoding happens on write and decoding on read inside
the repositories; nothing above the repository layer sees the encoded
form.
"""

import base64
import binascii


def encode_text(value: str) -> str:
    """Encode a UTF-8 string as base64 text. None/empty encode to ''."""
    return base64.b64encode((value or "").encode("utf-8")).decode("ascii")


def decode_text(value: str) -> str:
    """
    Decode base64 text back into a UTF-8 string.

    Raises:
        ValueError: If the stored value is not valid base64 / UTF-8
    """
    if not value:
        return ""
    try:
        return base64.b64decode(value.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError) as e:
        raise ValueError(f"Stored value is not base64 encoded UTF-8: {value[:32]!r}") from e
