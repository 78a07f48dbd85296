import uuid
from datetime import datetime, timezone
from imagegate.extensions import db


class ImageAsset(db.Model):
    __tablename__ = "image_assets"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_user_id = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(20), nullable=False)
    entity_id = db.Column(db.String(64), nullable=True)
    content_type = db.Column(db.String(50), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="APPROVED")
    size_bytes = db.Column(db.Integer, nullable=False)
    checksum_sha256 = db.Column(db.String(64), nullable=False)
    storage_key = db.Column(db.String(512), nullable=False, default="")
    image_data = db.Column(db.LargeBinary)  # NULL when bytes live in S3
    moderation_labels = db.Column(db.JSON, default=list)
    moderation_max_confidence = db.Column(db.Float, nullable=False, default=0.0)
    curated_by_user_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_image_assets_entity", "entity_type", "entity_id"),
    )

    @property
    def is_loose(self):
        return not self.entity_id

    def to_dict(self):
        return {
            "id": self.id,
            "ownerUserId": self.owner_user_id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "contentType": self.content_type,
            "sizeBytes": self.size_bytes,
            "status": self.status,
            "curatedByUserId": self.curated_by_user_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ImageAsset {self.id} {self.entity_type}/{self.entity_id}>"
