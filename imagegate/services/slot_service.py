"""Entity image slots: the narrow interface to the domain entity stores."""
import logging
from imagegate.extensions import db
from imagegate.errors import EntityNotFound
from imagegate.models.entity_slot import EntityImageSlot
from imagegate.models.enums import EntityType
from imagegate.services import asset_store

logger = logging.getLogger(__name__)


def register_entity(entity_type, entity_id, owner_user_id=None):
    """Create the slot for an entity if it does not exist yet."""
    entity_type = EntityType(entity_type)
    slot = db.session.get(EntityImageSlot, (entity_type.value, entity_id))
    if slot:
        return slot
    slot = EntityImageSlot(
        entity_type=entity_type.value,
        entity_id=entity_id,
        owner_user_id=owner_user_id,
    )
    db.session.add(slot)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Registered %s/%s (owner %s)", entity_type.value, entity_id, owner_user_id)
    return slot


def get_slot(entity_type, entity_id):
    slot = None
    if entity_id:
        slot = db.session.get(
            EntityImageSlot, (EntityType(entity_type).value, entity_id)
        )
    if slot is None:
        raise EntityNotFound(f"{EntityType(entity_type).value} not found")
    return slot


def set_slot_asset(slot, asset_id, curated_by_user_id=None):
    """Point ``slot`` at ``asset_id``. This commit binds the asset."""
    slot.image_asset_id = asset_id
    slot.curated_by_user_id = curated_by_user_id
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def clear_slot(slot):
    """Empty ``slot`` and return the asset id it referenced."""
    previous = slot.image_asset_id
    slot.image_asset_id = None
    slot.curated_by_user_id = None
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return previous


def unregister_entity(entity_type, entity_id):
    """Drop an entity's slot along with the asset it held."""
    slot = get_slot(entity_type, entity_id)
    asset_id = slot.image_asset_id
    db.session.delete(slot)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    if asset_id:
        try:
            asset_store.delete(asset_id)
        except Exception:
            logger.exception("Failed to delete asset %s of removed entity", asset_id)
