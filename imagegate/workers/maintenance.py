"""RQ worker jobs: storage hygiene for the upload pipeline.

Neither job is needed for correctness. Redemption already ignores expired
pending uploads, and a superseded asset that could not be deleted inline
is no longer referenced by any slot.
"""
import logging
from imagegate import create_app
from flask import current_app, has_app_context
from imagegate.models.entity_slot import EntityImageSlot
from imagegate.services import asset_store
from imagegate.services.pending_store import get_pending_store

logger = logging.getLogger(__name__)

_worker_app = None


def _get_app():
    """Return an app instance for worker execution.

    Reuse the current app when already inside an app context (tests/CLI),
    otherwise lazily create the worker app once.
    """
    global _worker_app
    if has_app_context():
        return current_app._get_current_object()
    if _worker_app is None:
        _worker_app = create_app()
    return _worker_app


def delete_asset(asset_id):
    """Delete an asset that lost its slot.

    Idempotency: an asset that is already gone is a no-op, and an asset
    that some slot references again is left alone.
    """
    app = _get_app()
    with app.app_context():
        referenced = EntityImageSlot.query.filter_by(image_asset_id=asset_id).first()
        if referenced:
            logger.warning(
                "Asset %s is bound to %s/%s, not deleting",
                asset_id,
                referenced.entity_type,
                referenced.entity_id,
            )
            return False

        deleted = asset_store.delete(asset_id)  # raises so RQ retries
        if not deleted:
            logger.info("Asset %s already deleted", asset_id)
        return deleted


def sweep_expired_uploads():
    """Remove expired and consumed pending uploads."""
    app = _get_app()
    with app.app_context():
        removed = get_pending_store().sweep_expired()
        logger.info("Swept %d pending uploads", removed)
        return removed
