"""Tests for the maintenance worker jobs."""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
import pytest

from imagegate.errors import AssetNotFound
from imagegate.models.enums import EntityType, ModerationStatus
from imagegate.models.pending_upload import PendingUpload
from imagegate.services import asset_store, slot_service
from imagegate.services.moderation import ModerationDecision
from imagegate.services.pending_store import get_pending_store
from imagegate.workers.maintenance import delete_asset, sweep_expired_uploads

APPROVED = ModerationDecision(status=ModerationStatus.APPROVED, reason="Approved")


def _asset(png_bytes, entity_id="g1"):
    return asset_store.create("u1", EntityType.GEAR, entity_id, "image/png", png_bytes)


def test_delete_asset_removes_loose_asset(app, png_bytes):
    asset_id = _asset(png_bytes).id

    assert delete_asset(asset_id) is True
    with pytest.raises(AssetNotFound):
        asset_store.get(asset_id)


def test_delete_asset_is_idempotent(app, png_bytes):
    asset_id = _asset(png_bytes).id
    delete_asset(asset_id)

    assert delete_asset(asset_id) is False


def test_delete_asset_skips_bound_asset(app, png_bytes):
    """A retried job must not delete an asset a slot points at."""
    slot = slot_service.register_entity(EntityType.GEAR, "g1")
    asset = _asset(png_bytes)
    slot_service.set_slot_asset(slot, asset.id)

    assert delete_asset(asset.id) is False
    assert asset_store.get(asset.id).id == asset.id


def test_delete_asset_failure_propagates_for_retry(app, png_bytes):
    asset_id = _asset(png_bytes).id
    with patch("imagegate.workers.maintenance.asset_store.delete", side_effect=RuntimeError("db down")):
        with pytest.raises(RuntimeError):
            delete_asset(asset_id)


def test_sweep_expired_uploads(app, png_bytes):
    store = get_pending_store()
    live = store.create_pending("u1", EntityType.GEAR, "image/png", png_bytes, APPROVED)
    used = store.create_pending("u1", EntityType.GEAR, "image/png", png_bytes, APPROVED)
    stale = store.create_pending("u1", EntityType.GEAR, "image/png", png_bytes, APPROVED)
    store.redeem(used, "u1")

    row = PendingUpload.query.get(stale)
    row.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    PendingUpload.query.session.commit()

    assert sweep_expired_uploads() == 2
    assert [row.token for row in PendingUpload.query.all()] == [live]
