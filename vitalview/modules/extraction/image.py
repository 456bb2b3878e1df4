import base64
import binascii
import re

_DATA_URI = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(;[\w=-]+)*;base64,", re.IGNORECASE)


class InvalidImage(ValueError):
    """Image payload could not be decoded to bytes."""


def decode_image(image: bytes | str) -> bytes:
    """Accept raw bytes, bare base64 or a base64 data URI."""
    if isinstance(image, (bytes, bytearray)):
        if not image:
            raise InvalidImage("image is empty")
        return bytes(image)

    text = image.strip()
    match = _DATA_URI.match(text)
    if match:
        text = text[match.end():]
    if not text:
        raise InvalidImage("image is empty")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImage("image is not valid base64") from exc


def to_data_uri(image: bytes | str, mime_type: str = "image/jpeg") -> str:
    if isinstance(image, str) and _DATA_URI.match(image.strip()):
        return image.strip()
    raw = decode_image(image)
    return f"data:{mime_type};base64,{base64.b64encode(raw).decode('ascii')}"
