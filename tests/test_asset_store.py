"""Tests for the asset store and its blob backends."""
import hashlib
import pytest
from imagegate.errors import AssetNotFound
from imagegate.models.enums import EntityType, ModerationStatus
from imagegate.models.image_asset import ImageAsset
from imagegate.services import asset_store, storage_service
from imagegate.services.moderation import ModerationDecision, ModerationLabel


def test_create_get_and_load(app, png_bytes):
    decision = ModerationDecision(
        status=ModerationStatus.APPROVED,
        reason="Approved",
        labels=[ModerationLabel(name="Suggestive", confidence=3.5)],
        max_confidence=3.5,
    )
    asset = asset_store.create(
        "u1", EntityType.AIRCRAFT, "ac-1", "image/png", png_bytes, decision=decision
    )

    loaded = asset_store.get(asset.id)
    assert loaded.status == "APPROVED"
    assert loaded.entity_type == "aircraft"
    assert loaded.entity_id == "ac-1"
    assert loaded.size_bytes == len(png_bytes)
    assert loaded.checksum_sha256 == hashlib.sha256(png_bytes).hexdigest()
    assert loaded.moderation_labels == [{"name": "Suggestive", "confidence": 3.5}]
    assert loaded.moderation_max_confidence == 3.5
    assert loaded.storage_key == ""
    assert asset_store.load_bytes(loaded) == png_bytes


def test_asset_without_entity_is_loose(app, png_bytes):
    asset = asset_store.create("u1", EntityType.OTHER, None, "image/png", png_bytes)
    assert asset.is_loose
    assert asset.curated_by_user_id is None


def test_create_requires_bytes_and_owner(app):
    with pytest.raises(ValueError):
        asset_store.create("u1", EntityType.OTHER, "x", "image/png", b"")
    with pytest.raises(ValueError):
        asset_store.create("", EntityType.OTHER, "x", "image/png", b"data")


def test_get_missing_raises(app):
    with pytest.raises(AssetNotFound):
        asset_store.get("missing")
    with pytest.raises(AssetNotFound):
        asset_store.get(None)


def test_delete_is_idempotent(app, png_bytes):
    asset = asset_store.create("u1", EntityType.BUILD, "b1", "image/png", png_bytes)
    asset_id = asset.id

    assert asset_store.delete(asset_id) is True
    assert asset_store.delete(asset_id) is False
    with pytest.raises(AssetNotFound):
        asset_store.get(asset_id)


def test_list_for_entity(app, png_bytes, jpeg_bytes):
    asset_store.create("u1", EntityType.BUILD, "b1", "image/png", png_bytes)
    asset_store.create("u1", EntityType.BUILD, "b1", "image/jpeg", jpeg_bytes)
    asset_store.create("u1", EntityType.BUILD, "b2", "image/png", png_bytes)

    assets = asset_store.list_for_entity(EntityType.BUILD, "b1")
    assert [a.content_type for a in assets] == ["image/png", "image/jpeg"]


class FakeBucket:
    def __init__(self):
        self.objects = {}
        self.fail_delete = False

    def upload(self, storage_key, data, content_type):
        self.objects[storage_key] = (data, content_type)

    def download(self, storage_key):
        return self.objects[storage_key][0]

    def delete(self, storage_key):
        if self.fail_delete:
            raise RuntimeError("s3 unavailable")
        self.objects.pop(storage_key, None)


@pytest.fixture
def bucket(app, monkeypatch):
    fake = FakeBucket()
    app.config["ASSET_BLOB_BACKEND"] = "s3"
    monkeypatch.setattr(storage_service, "upload", fake.upload)
    monkeypatch.setattr(storage_service, "download", fake.download)
    monkeypatch.setattr(storage_service, "delete", fake.delete)
    return fake


def test_s3_backend_keeps_bytes_out_of_the_row(bucket, png_bytes):
    asset = asset_store.create("u1", EntityType.GEAR, "g1", "image/png", png_bytes)

    assert asset.image_data is None
    assert asset.storage_key == f"assets/{asset.id}"
    assert bucket.objects[asset.storage_key] == (png_bytes, "image/png")
    assert asset_store.load_bytes(asset_store.get(asset.id)) == png_bytes

    assert asset_store.delete(asset.id) is True
    assert bucket.objects == {}


def test_s3_upload_failure_leaves_no_row(bucket, monkeypatch, png_bytes):
    def boom(*args, **kwargs):
        raise RuntimeError("s3 unavailable")

    monkeypatch.setattr(storage_service, "upload", boom)
    with pytest.raises(RuntimeError):
        asset_store.create("u1", EntityType.GEAR, "g1", "image/png", png_bytes)
    assert ImageAsset.query.count() == 0


def test_s3_delete_failure_is_logged_not_raised(bucket, png_bytes):
    asset = asset_store.create("u1", EntityType.GEAR, "g1", "image/png", png_bytes)
    bucket.fail_delete = True

    assert asset_store.delete(asset.id) is True
    assert ImageAsset.query.count() == 0
