"""Attach/replace orchestration for entity images.

Two ways in:

- inline: bytes are size-checked, sniffed, moderated and attached in one
  call (``upload_and_attach``);
- deferred: bytes are moderated now and parked behind a token
  (``moderate_upload``), then attached later, possibly by an administrator
  (``attach_from_token``).

Attaching always creates the new asset first, then points the entity's
slot at it. The slot update is the commit point: if it fails the new
asset is deleted again, and only after it succeeds is the superseded
asset removed.
"""
import logging
from dataclasses import dataclass

from flask import current_app
from rq import Retry

import imagegate.extensions as ext
from imagegate.errors import (
    EntityNotFound,
    ImageError,
    InternalFailure,
    Forbidden,
    PendingReview,
    PendingUploadNotFound,
    Rejected,
    TokenInvalidOrExpired,
    TooLarge,
    UnsupportedType,
    UploadNotApproved,
    AssetNotFound,
)
from imagegate.models.enums import EntityType, ModerationStatus
from imagegate.services import asset_store, slot_service, sniffer
from imagegate.services.moderation import ModerationDecision, get_moderator
from imagegate.services.pending_store import get_pending_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    user_id: str
    is_admin: bool = False


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------

def moderate_upload(actor, entity_type, raw, claimed_content_type=None):
    """Moderate bytes and park approved ones behind a single-use token.

    Returns:
        (decision, token). ``token`` is None unless the decision is
        APPROVED. Rejections are returned, not raised.

    Raises:
        TooLarge, UnsupportedType
    """
    entity_type = EntityType(entity_type)
    check_size(entity_type, raw)
    content_type = sniff_or_reject(raw, claimed_content_type)

    decision = get_moderator().decide(actor.user_id, entity_type, raw)
    if not decision.approved:
        logger.info(
            "Upload by %s for %s not approved: %s (%s)",
            actor.user_id,
            entity_type.value,
            decision.status.value,
            decision.reason,
        )
        return decision, None

    try:
        token = get_pending_store().create_pending(
            actor.user_id, entity_type, content_type, raw, decision
        )
    except Exception:
        logger.exception("Failed to store pending upload for %s", actor.user_id)
        return ModerationDecision.pending_review(), None
    return decision, token


def upload_and_attach(actor, entity_type, entity_id, raw, claimed_content_type=None):
    """Moderate ``raw`` and bind it to the entity's image slot.

    The size ceiling is enforced before anything else so oversize payloads
    never cost a moderation call.
    """
    entity_type = EntityType(entity_type)
    check_size(entity_type, raw)
    content_type = sniff_or_reject(raw, claimed_content_type)

    try:
        slot = authorize(actor, entity_type, entity_id)

        decision = get_moderator().decide(actor.user_id, entity_type, raw)
        raise_for_decision(decision)

        if slot is None:
            slot = _register_own_avatar(actor, entity_type, entity_id)
        return _bind(
            slot,
            owner_user_id=actor.user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            content_type=content_type,
            data=raw,
            decision=decision,
            curated_by_user_id=None,
        )
    except ImageError:
        raise
    except Exception as e:
        logger.exception(
            "Inline attach failed for %s/%s by %s", entity_type.value, entity_id, actor.user_id
        )
        raise InternalFailure() from e


def attach_from_token(actor, entity_type, entity_id, token):
    """Bind a previously moderated upload to the entity's image slot.

    Administrators may redeem any user's token; everyone else only their
    own. The token is consumed by the redemption itself.
    """
    entity_type = EntityType(entity_type)
    try:
        slot = authorize(actor, entity_type, entity_id)

        try:
            redeemed = get_pending_store().redeem(
                token, actor.user_id, any_owner=actor.is_admin
            )
        except PendingUploadNotFound:
            raise TokenInvalidOrExpired()
        except UploadNotApproved:
            raise Rejected("Image is not approved")

        content_type, ok = sniffer.sniff(redeemed.data, allowed=_allowed_types())
        if not ok or content_type != redeemed.content_type:
            logger.warning(
                "Redeemed upload sniffed as %r, stored as %r; not attaching to %s/%s",
                content_type,
                redeemed.content_type,
                entity_type.value,
                entity_id,
            )
            raise UnsupportedType()
        check_size(entity_type, redeemed.data)

        curated_by = None
        if actor.user_id != redeemed.owner_user_id:
            curated_by = actor.user_id

        if slot is None:
            slot = _register_own_avatar(actor, entity_type, entity_id)
        return _bind(
            slot,
            owner_user_id=redeemed.owner_user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            content_type=content_type,
            data=redeemed.data,
            decision=redeemed.decision,
            curated_by_user_id=curated_by,
        )
    except ImageError:
        raise
    except Exception as e:
        logger.exception(
            "Token attach failed for %s/%s by %s", entity_type.value, entity_id, actor.user_id
        )
        raise InternalFailure() from e


def detach(actor, entity_type, entity_id):
    """Clear the entity's image slot and drop the asset it pointed at."""
    entity_type = EntityType(entity_type)
    try:
        slot = authorize(actor, entity_type, entity_id)
        if slot is None:
            return None
        previous = slot_service.clear_slot(slot)
    except ImageError:
        raise
    except Exception as e:
        logger.exception("Failed to clear image of %s/%s", entity_type.value, entity_id)
        raise InternalFailure("Failed to remove image") from e

    if previous:
        delete_superseded(previous)
    return previous


def load_entity_image(entity_type, entity_id):
    """Return (asset, bytes) for the image currently in the entity's slot."""
    slot = slot_service.get_slot(entity_type, entity_id)
    if not slot.image_asset_id:
        raise AssetNotFound(f"{slot.entity_type}/{slot.entity_id}")
    return load_asset(slot.image_asset_id)


def load_asset(asset_id):
    asset = asset_store.get(asset_id)
    return asset, asset_store.load_bytes(asset)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

def max_bytes_for(entity_type):
    limits = current_app.config["IMAGE_MAX_BYTES"]
    return limits.get(EntityType(entity_type).value, limits[EntityType.OTHER.value])


def check_size(entity_type, data):
    limit = max_bytes_for(entity_type)
    size = len(data or b"")
    if size > limit:
        raise TooLarge(size=size, limit=limit)


def sniff_or_reject(data, claimed_content_type=None):
    content_type, ok = sniffer.sniff(data, allowed=_allowed_types())
    if not ok:
        logger.info(
            "Rejected upload: sniffed %r, client claimed %r",
            content_type or "unknown",
            claimed_content_type,
        )
        raise UnsupportedType()
    return content_type


def authorize(actor, entity_type, entity_id):
    """Return the slot ``actor`` may change, or raise.

    Returns None for the actor's own avatar slot when it does not exist
    yet; callers register it once they have something to bind. Catalog
    slots without an owner are for administrators only.
    """
    if not actor or not actor.user_id:
        raise Forbidden("Authentication required")

    entity_type = EntityType(entity_type)
    if entity_type == EntityType.AVATAR and entity_id == actor.user_id:
        try:
            return slot_service.get_slot(entity_type, entity_id)
        except EntityNotFound:
            return None

    slot = slot_service.get_slot(entity_type, entity_id)
    if actor.is_admin:
        return slot
    if slot.owner_user_id and slot.owner_user_id == actor.user_id:
        return slot
    raise Forbidden()


def _register_own_avatar(actor, entity_type, entity_id):
    return slot_service.register_entity(entity_type, entity_id, owner_user_id=actor.user_id)


def raise_for_decision(decision):
    if decision.status == ModerationStatus.APPROVED:
        return
    if decision.status == ModerationStatus.REJECTED:
        raise Rejected(decision.reason)
    raise PendingReview(decision.reason)


def _allowed_types():
    return current_app.config.get("ALLOWED_IMAGE_TYPES", sniffer.ALLOWED_CONTENT_TYPES)


# ---------------------------------------------------------------------------
# Create, bind, compensate
# ---------------------------------------------------------------------------

def _bind(slot, owner_user_id, entity_type, entity_id, content_type, data, decision, curated_by_user_id):
    previous_asset_id = slot.image_asset_id

    asset = asset_store.create(
        owner_user_id=owner_user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        content_type=content_type,
        data=data,
        curated_by_user_id=curated_by_user_id,
        decision=decision,
    )
    asset_id = asset.id

    try:
        slot_service.set_slot_asset(slot, asset_id, curated_by_user_id=curated_by_user_id)
    except Exception as e:
        logger.exception(
            "Failed to bind asset %s to %s/%s, deleting it",
            asset_id,
            entity_type.value,
            entity_id,
        )
        _compensate(asset_id)
        raise InternalFailure() from e

    if previous_asset_id and previous_asset_id != asset_id:
        delete_superseded(previous_asset_id)

    logger.info(
        "Attached asset %s to %s/%s (owner %s, curated by %s)",
        asset_id,
        entity_type.value,
        entity_id,
        owner_user_id,
        curated_by_user_id,
    )
    return asset


def _compensate(asset_id):
    try:
        asset_store.delete(asset_id)
    except Exception:
        logger.exception("Compensating delete of asset %s failed, queueing retry", asset_id)
        _enqueue_delete(asset_id)


def delete_superseded(asset_id):
    """Best-effort delete; a failure is queued, never retried inline."""
    try:
        asset_store.delete(asset_id)
    except Exception:
        logger.exception("Failed to delete superseded asset %s, queueing retry", asset_id)
        _enqueue_delete(asset_id)


def _enqueue_delete(asset_id):
    try:
        ext.task_queue.enqueue(
            "imagegate.workers.maintenance.delete_asset",
            asset_id=asset_id,
            job_id=f"delete_asset_{asset_id}",
            retry=Retry(max=3, interval=[10, 60, 300]),
        )
    except Exception:
        logger.exception("Failed to enqueue deletion of asset %s", asset_id)
