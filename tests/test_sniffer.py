"""Tests for content-type sniffing."""
from imagegate.services import sniffer
from tests.conftest import make_jpeg, make_png


def test_png_is_sniffed_from_bytes():
    assert sniffer.sniff(make_png()) == ("image/png", True)


def test_jpeg_is_sniffed_from_bytes():
    assert sniffer.sniff(make_jpeg()) == ("image/jpeg", True)


def test_all_zero_blob_is_rejected():
    content_type, ok = sniffer.sniff(b"\x00" * 50)
    assert content_type == ""
    assert not ok


def test_empty_input_is_rejected():
    assert sniffer.sniff(b"") == ("", False)
    assert sniffer.sniff(None) == ("", False)


def test_webp_is_detected_but_not_allowed():
    webp_header = b"RIFF\x24\x00\x00\x00WEBPVP8 " + b"\x00" * 32
    assert sniffer.detect(webp_header) == "image/webp"
    assert sniffer.sniff(webp_header) == ("image/webp", False)


def test_gif_is_not_allowed():
    content_type, ok = sniffer.sniff(b"GIF89a" + b"\x00" * 20)
    assert content_type == "image/gif"
    assert not ok


def test_signature_followed_by_garbage_is_rejected():
    fake_png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 40
    assert sniffer.sniff(fake_png) == ("image/png", False)


def test_allow_list_can_be_narrowed():
    assert sniffer.sniff(make_jpeg(), allowed={"image/png"}) == ("image/jpeg", False)
