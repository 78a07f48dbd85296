import io
import os
import pytest
from PIL import Image as PILImage
from imagegate import create_app
from imagegate.extensions import db as _db
from imagegate.models.enums import ModerationStatus
from imagegate.services.moderation import ModerationDecision


class FakeModerator:
    """Returns a fixed decision and records every call."""

    def __init__(self, decision=None):
        self.decision = decision or ModerationDecision(
            status=ModerationStatus.APPROVED, reason="Approved"
        )
        self.calls = []

    def decide(self, owner_user_id, entity_type, image_bytes):
        self.calls.append((owner_user_id, entity_type, len(image_bytes)))
        return self.decision


def make_png(size=(32, 32), color=(200, 30, 30), noise=False):
    if noise:
        img = PILImage.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    else:
        img = PILImage.new("RGB", size, color)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(size=(32, 32), color=(30, 30, 200)):
    buffer = io.BytesIO()
    PILImage.new("RGB", size, color).save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


@pytest.fixture
def app():
    """Fresh application and in-memory database per test."""
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def moderator(app):
    fake = FakeModerator()
    app.extensions["moderator"] = fake
    return fake


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()
