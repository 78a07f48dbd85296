from datetime import datetime, timezone
from imagegate.extensions import db


class EntityImageSlot(db.Model):
    """The single image pointer a domain entity holds.

    Rows are registered by the stores that own users, aircraft, builds and
    catalog items. ``owner_user_id`` is NULL for catalog entities, which
    only administrators may curate.
    """

    __tablename__ = "entity_image_slots"

    entity_type = db.Column(db.String(20), primary_key=True)
    entity_id = db.Column(db.String(64), primary_key=True)
    owner_user_id = db.Column(db.String(64), nullable=True, index=True)
    image_asset_id = db.Column(
        db.String(36),
        db.ForeignKey("image_assets.id", ondelete="SET NULL"),
        nullable=True,
    )
    curated_by_user_id = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return (
            f"<EntityImageSlot {self.entity_type}/{self.entity_id} "
            f"-> {self.image_asset_id}>"
        )
