"""Content-type detection from image bytes.

The client-declared Content-Type is never trusted: the stored type of an
asset is whatever this module reads from the payload itself.
"""
import io
from PIL import Image as PILImage


ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/png"})

# (offset, magic, content type). WebP and GIF are recognised so they can be
# reported, but they are not on the allow-list.
_SIGNATURES = (
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
)

_PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
}


def detect(data):
    """Return the content type implied by the leading bytes, or ""."""
    if not data:
        return ""
    head = bytes(data[:16])
    for offset, magic, content_type in _SIGNATURES:
        if head[offset:offset + len(magic)] == magic:
            return content_type
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    return ""


def sniff(data, allowed=None):
    """Sniff ``data`` and check it against the allow-list.

    Returns:
        (content_type, ok). ``content_type`` is "" when nothing matched;
        ``ok`` is False for empty input, unknown signatures, types outside
        ``allowed``, and payloads whose header Pillow cannot parse.
    """
    allowed = ALLOWED_CONTENT_TYPES if allowed is None else allowed
    content_type = detect(data)
    if not content_type or content_type not in allowed:
        return content_type, False

    if not _decodes_as(data, content_type):
        return content_type, False
    return content_type, True


def _decodes_as(data, content_type):
    expected = _PIL_FORMATS.get(content_type)
    if expected is None:
        return False
    try:
        img = PILImage.open(io.BytesIO(data))
        fmt = img.format
        img.verify()
    except Exception:
        return False
    return fmt == expected
