from datetime import datetime, timezone
from imagegate.extensions import db


class PendingUpload(db.Model):
    """A moderated blob waiting to be attached through its token."""

    __tablename__ = "pending_uploads"

    token = db.Column(db.String(64), primary_key=True)
    owner_user_id = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(20), nullable=False)
    content_type = db.Column(db.String(50), nullable=False)
    image_data = db.Column(db.LargeBinary, nullable=False)
    decision_status = db.Column(db.String(20), nullable=False)
    decision_reason = db.Column(db.String(255), nullable=False, default="")
    moderation_labels = db.Column(db.JSON, default=list)
    moderation_max_confidence = db.Column(db.Float, nullable=False, default=0.0)
    consumed = db.Column(db.Boolean, nullable=False, default=False)
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        state = "consumed" if self.consumed else "open"
        return f"<PendingUpload {self.token[:8]}… {self.owner_user_id} [{state}]>"
