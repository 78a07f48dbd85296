"""Moderation decisions for uploaded image bytes.

The decision algorithm itself lives behind a detector (AWS Rekognition in
production). This module turns detector labels into an
APPROVED/REJECTED decision and degrades to PENDING_REVIEW whenever a
decision cannot be made in time.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import List

import boto3
from botocore.config import Config as BotoConfig
from flask import current_app

from imagegate.models.enums import ModerationStatus

logger = logging.getLogger(__name__)

UNAVAILABLE_REASON = "Unable to verify right now"

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="moderation")


@dataclass
class ModerationLabel:
    name: str
    confidence: float
    parent_name: str = ""

    def to_dict(self):
        data = {"name": self.name, "confidence": self.confidence}
        if self.parent_name:
            data["parentName"] = self.parent_name
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            name=data.get("name", ""),
            confidence=float(data.get("confidence", 0.0)),
            parent_name=data.get("parentName", ""),
        )


@dataclass
class ModerationDecision:
    status: ModerationStatus
    reason: str = ""
    labels: List[ModerationLabel] = field(default_factory=list)
    max_confidence: float = 0.0

    def __post_init__(self):
        self.status = ModerationStatus(self.status)
        if self.status != ModerationStatus.APPROVED and not self.reason:
            raise ValueError("a reason is required unless the image is approved")

    @property
    def approved(self):
        return self.status == ModerationStatus.APPROVED

    def labels_as_dicts(self):
        return [label.to_dict() for label in self.labels]

    @classmethod
    def pending_review(cls, reason=UNAVAILABLE_REASON):
        return cls(status=ModerationStatus.PENDING_REVIEW, reason=reason)


class RekognitionDetector:
    """Calls Rekognition DetectModerationLabels with raw bytes."""

    def __init__(self, region, connect_timeout=2.0, read_timeout=5.0):
        self.region = region
        self._client = boto3.client(
            "rekognition",
            region_name=region or None,
            config=BotoConfig(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": 1},
            ),
        )

    def detect_moderation_labels(self, image_bytes):
        if not image_bytes:
            raise ValueError("image bytes are required")
        response = self._client.detect_moderation_labels(
            Image={"Bytes": image_bytes}
        )
        return [
            ModerationLabel(
                name=item.get("Name", ""),
                confidence=float(item.get("Confidence", 0.0)),
                parent_name=item.get("ParentName", ""),
            )
            for item in response.get("ModerationLabels", [])
        ]


class AllowAllDetector:
    """Detector used when moderation is switched off."""

    def detect_moderation_labels(self, image_bytes):
        return []


class Moderator:
    """Evaluates detector labels into a decision under a deadline."""

    def __init__(self, detector, reject_confidence=70.0, timeout=5.0):
        self.detector = detector
        self.reject_confidence = reject_confidence if reject_confidence > 0 else 70.0
        self.timeout = timeout if timeout > 0 else 5.0

    def decide(self, owner_user_id, entity_type, image_bytes):
        future = _executor.submit(self.detector.detect_moderation_labels, image_bytes)
        try:
            labels = future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning(
                "Moderation timed out after %.1fs for user %s (%s)",
                self.timeout,
                owner_user_id,
                _entity_value(entity_type),
            )
            return ModerationDecision.pending_review()
        except Exception:
            logger.exception(
                "Moderation detector failed for user %s (%s)",
                owner_user_id,
                _entity_value(entity_type),
            )
            return ModerationDecision.pending_review()

        return self.evaluate(labels or [])

    def evaluate(self, labels):
        max_confidence = 0.0
        should_reject = False
        for label in labels:
            max_confidence = max(max_confidence, label.confidence)
            if label.confidence >= self.reject_confidence:
                should_reject = True

        if should_reject:
            return ModerationDecision(
                status=ModerationStatus.REJECTED,
                reason="Not allowed",
                labels=list(labels),
                max_confidence=max_confidence,
            )
        return ModerationDecision(
            status=ModerationStatus.APPROVED,
            reason="Approved",
            labels=list(labels),
            max_confidence=max_confidence,
        )


def _entity_value(entity_type):
    return getattr(entity_type, "value", entity_type)


def init_app(app):
    """Build the configured moderator and register it on the app."""
    if app.config.get("IMAGE_MODERATION_ENABLED"):
        detector = RekognitionDetector(
            region=app.config.get("AWS_REGION"),
            read_timeout=app.config.get("MODERATION_TIMEOUT", 5.0),
        )
    else:
        logger.warning("Image moderation disabled, all sniffed images are approved")
        detector = AllowAllDetector()

    app.extensions["moderator"] = Moderator(
        detector,
        reject_confidence=app.config.get("MODERATION_REJECT_CONFIDENCE", 70.0),
        timeout=app.config.get("MODERATION_TIMEOUT", 5.0),
    )


def get_moderator():
    return current_app.extensions["moderator"]
