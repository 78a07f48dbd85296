#!/usr/bin/env python3
"""Seed sample entities and images for local development."""
import io
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from PIL import Image as PILImage

from imagegate import create_app
from imagegate.extensions import db
from imagegate.models.enums import EntityType
from imagegate.services import coordinator, slot_service
from imagegate.services.coordinator import Actor

app = create_app()

ADMIN_ID = "admin-dev"

SAMPLE_ENTITIES = [
    # (type, id, owner, colour, format)
    (EntityType.AVATAR, "pilot-1", "pilot-1", (220, 40, 40), "PNG"),
    (EntityType.AIRCRAFT, "aircraft-1", "pilot-1", (40, 120, 220), "JPEG"),
    (EntityType.BUILD, "build-1", "pilot-1", (40, 180, 90), "JPEG"),
    (EntityType.GEAR, "gear-1", None, (200, 200, 40), "PNG"),
]


def sample_image(colour, fmt):
    buffer = io.BytesIO()
    PILImage.new("RGB", (64, 64), colour).save(buffer, format=fmt)
    return buffer.getvalue()


def main():
    with app.app_context():
        db.create_all()
        for entity_type, entity_id, owner, colour, fmt in SAMPLE_ENTITIES:
            slot = slot_service.register_entity(entity_type, entity_id, owner_user_id=owner)
            if slot.image_asset_id:
                print(f"  {entity_type.value}/{entity_id} already has an image, skipping")
                continue

            actor = Actor(user_id=owner, is_admin=False) if owner else Actor(user_id=ADMIN_ID, is_admin=True)
            asset = coordinator.upload_and_attach(
                actor, entity_type, entity_id, sample_image(colour, fmt)
            )
            print(f"  {entity_type.value}/{entity_id} -> {asset.id} ({asset.content_type})")

        print(f"Seeded {len(SAMPLE_ENTITIES)} entities.")


if __name__ == "__main__":
    main()
