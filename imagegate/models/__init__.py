from imagegate.models.enums import EntityType, ModerationStatus
from imagegate.models.image_asset import ImageAsset
from imagegate.models.pending_upload import PendingUpload
from imagegate.models.entity_slot import EntityImageSlot

__all__ = [
    "EntityType",
    "ModerationStatus",
    "ImageAsset",
    "PendingUpload",
    "EntityImageSlot",
]
