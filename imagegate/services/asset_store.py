"""Durable store of approved image assets."""
import hashlib
import logging
from imagegate.extensions import db
from imagegate.errors import AssetNotFound
from imagegate.models.enums import EntityType, ModerationStatus
from imagegate.models.image_asset import ImageAsset
from imagegate.services import storage_service

logger = logging.getLogger(__name__)


def create(
    owner_user_id,
    entity_type,
    entity_id,
    content_type,
    data,
    curated_by_user_id=None,
    decision=None,
):
    """Persist approved bytes as a new asset and return it.

    Only approved bytes may reach this function; the row is always written
    with status APPROVED. When S3 holds the bytes, the object is uploaded
    before the row is committed and removed again if the commit fails.
    """
    if not data:
        raise ValueError("image bytes are required")
    if not owner_user_id:
        raise ValueError("owner user id is required")
    entity_type = EntityType(entity_type or EntityType.OTHER)

    asset = ImageAsset(
        owner_user_id=owner_user_id,
        entity_type=entity_type.value,
        entity_id=entity_id or None,
        content_type=content_type,
        status=ModerationStatus.APPROVED.value,
        size_bytes=len(data),
        checksum_sha256=hashlib.sha256(data).hexdigest(),
        curated_by_user_id=curated_by_user_id,
    )
    if decision is not None:
        asset.moderation_labels = decision.labels_as_dicts()
        asset.moderation_max_confidence = decision.max_confidence
    else:
        asset.moderation_labels = []

    db.session.add(asset)
    db.session.flush()  # assigns asset.id

    if storage_service.uses_s3():
        asset.storage_key = storage_service.storage_key_for(asset.id)
        try:
            storage_service.upload(asset.storage_key, data, content_type)
        except Exception:
            db.session.rollback()
            raise
    else:
        asset.image_data = data

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        if asset.storage_key:
            _delete_blob(asset.storage_key)
        raise

    logger.info(
        "Created asset %s for %s/%s (%d bytes, %s)",
        asset.id,
        asset.entity_type,
        asset.entity_id,
        asset.size_bytes,
        asset.content_type,
    )
    return asset


def get(asset_id):
    """Return the asset with ``asset_id`` or raise AssetNotFound."""
    asset = db.session.get(ImageAsset, asset_id) if asset_id else None
    if asset is None:
        raise AssetNotFound(asset_id)
    return asset


def load_bytes(asset):
    if asset.image_data is not None:
        return asset.image_data
    if not asset.storage_key:
        raise AssetNotFound(asset.id)
    return storage_service.download(asset.storage_key)


def delete(asset_id):
    """Delete an asset. Returns False when it was already gone.

    Failing to remove the S3 object is logged and does not fail the call;
    the metadata row is what makes an asset reachable.
    """
    asset = db.session.get(ImageAsset, asset_id) if asset_id else None
    if asset is None:
        return False

    storage_key = asset.storage_key
    db.session.delete(asset)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if storage_key:
        _delete_blob(storage_key)
    logger.info("Deleted asset %s", asset_id)
    return True


def list_for_entity(entity_type, entity_id):
    return (
        ImageAsset.query.filter_by(
            entity_type=EntityType(entity_type).value, entity_id=entity_id
        )
        .order_by(ImageAsset.created_at)
        .all()
    )


def _delete_blob(storage_key):
    try:
        storage_service.delete(storage_key)
    except Exception:
        logger.exception("Failed to delete blob %s", storage_key)
