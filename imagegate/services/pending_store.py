"""Moderated uploads waiting to be attached.

A pending upload is addressable only through an opaque, single-use,
expiring token. Redeeming a token consumes it in the same storage
operation that hands back the bytes, so concurrent redemptions of one
token have exactly one winner. Expired, consumed, unknown and foreign
tokens all look the same to the caller.
"""
import base64
import json
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import delete, or_, select, update

import imagegate.extensions as ext
from imagegate.extensions import db
from imagegate.errors import PendingUploadNotFound, UploadNotApproved
from imagegate.models.enums import EntityType, ModerationStatus
from imagegate.models.pending_upload import PendingUpload
from imagegate.services.moderation import ModerationDecision, ModerationLabel

logger = logging.getLogger(__name__)

DEFAULT_TTL = 10 * 60
DEFAULT_MAX_PER_OWNER = 20


def _utcnow():
    return datetime.now(timezone.utc)


def new_token():
    return secrets.token_urlsafe(32)


@dataclass
class RedeemedUpload:
    token: str
    owner_user_id: str
    entity_type: EntityType
    content_type: str
    data: bytes
    decision: ModerationDecision


class SqlPendingStore:
    """Pending uploads in the ``pending_uploads`` table.

    Consumption is a conditional UPDATE on ``consumed = false``; the row
    count tells the caller whether it won.
    """

    def __init__(self, ttl=DEFAULT_TTL, max_per_owner=DEFAULT_MAX_PER_OWNER, clock=None):
        self.ttl = ttl if ttl and ttl > 0 else DEFAULT_TTL
        self.max_per_owner = max_per_owner if max_per_owner and max_per_owner > 0 else DEFAULT_MAX_PER_OWNER
        self._clock = clock or _utcnow

    def create_pending(self, owner_user_id, entity_type, content_type, data, decision):
        if decision is None or not decision.approved:
            raise UploadNotApproved()

        now = self._clock()
        token = new_token()
        row = PendingUpload(
            token=token,
            owner_user_id=owner_user_id,
            entity_type=EntityType(entity_type).value,
            content_type=content_type,
            image_data=data,
            decision_status=decision.status.value,
            decision_reason=decision.reason or "",
            moderation_labels=decision.labels_as_dicts(),
            moderation_max_confidence=decision.max_confidence,
            consumed=False,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl),
        )
        try:
            self._evict_for_owner(owner_user_id, now)
            db.session.add(row)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return token

    def redeem(self, token, redeemer_user_id, any_owner=False):
        token = (token or "").strip()
        if not token:
            raise PendingUploadNotFound()

        now = self._clock()
        stmt = update(PendingUpload).where(
            PendingUpload.token == token,
            PendingUpload.consumed.is_(False),
            PendingUpload.expires_at > now,
        )
        if not any_owner:
            stmt = stmt.where(PendingUpload.owner_user_id == redeemer_user_id)
        stmt = stmt.values(consumed=True, consumed_at=now).execution_options(
            synchronize_session=False
        )

        try:
            result = db.session.execute(stmt)
            if result.rowcount != 1:
                db.session.rollback()
                raise PendingUploadNotFound()

            row = db.session.execute(
                select(PendingUpload)
                .where(PendingUpload.token == token)
                .execution_options(populate_existing=True)
            ).scalar_one()
            redeemed = _to_redeemed(row)
            db.session.commit()
        except PendingUploadNotFound:
            raise
        except Exception:
            db.session.rollback()
            raise

        if not redeemed.decision.approved:
            raise UploadNotApproved()
        return redeemed

    def sweep_expired(self, now=None):
        """Delete expired and consumed rows. Returns how many were removed."""
        now = now or self._clock()
        stmt = delete(PendingUpload).where(
            or_(PendingUpload.expires_at <= now, PendingUpload.consumed.is_(True))
        ).execution_options(synchronize_session=False)
        try:
            result = db.session.execute(stmt)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result.rowcount or 0

    def _evict_for_owner(self, owner_user_id, now):
        live = (
            select(PendingUpload.token)
            .where(
                PendingUpload.owner_user_id == owner_user_id,
                PendingUpload.consumed.is_(False),
                PendingUpload.expires_at > now,
            )
            .order_by(PendingUpload.created_at.desc())
            .offset(self.max_per_owner - 1)
        )
        stale = [t for (t,) in db.session.execute(live).all()]
        if stale:
            db.session.execute(
                delete(PendingUpload)
                .where(PendingUpload.token.in_(stale))
                .execution_options(synchronize_session=False)
            )
            logger.info(
                "Evicted %d pending uploads for user %s over quota",
                len(stale),
                owner_user_id,
            )


# Returns the stored payload and deletes the key, or nil. Ownership and
# expiry are checked inside the script so the check and the delete are one
# atomic step on the server.
_REDEEM_SCRIPT = """
local payload = redis.call('GET', KEYS[1])
if not payload then
  return false
end
local record = cjson.decode(payload)
if tonumber(record['expires_at']) <= tonumber(ARGV[3]) then
  redis.call('DEL', KEYS[1])
  return false
end
if ARGV[2] == '0' and record['owner_user_id'] ~= ARGV[1] then
  return false
end
redis.call('DEL', KEYS[1])
return payload
"""


class RedisPendingStore:
    """Pending uploads as Redis keys with a server-side TTL."""

    def __init__(self, client, ttl=DEFAULT_TTL, max_per_owner=DEFAULT_MAX_PER_OWNER, prefix="pending-upload:"):
        if client is None:
            raise RuntimeError("Redis pending store requires a Redis connection")
        self.client = client
        self.ttl = ttl if ttl and ttl > 0 else DEFAULT_TTL
        self.max_per_owner = max_per_owner if max_per_owner and max_per_owner > 0 else DEFAULT_MAX_PER_OWNER
        self.prefix = (prefix or "").strip() or "pending-upload:"
        self._redeem = client.register_script(_REDEEM_SCRIPT)

    def key(self, token):
        return self.prefix + token

    def owner_key(self, owner_user_id):
        return f"{self.prefix}owner:{owner_user_id}"

    def create_pending(self, owner_user_id, entity_type, content_type, data, decision):
        if decision is None or not decision.approved:
            raise UploadNotApproved()

        now = time.time()
        token = new_token()
        payload = json.dumps({
            "owner_user_id": owner_user_id,
            "entity_type": EntityType(entity_type).value,
            "content_type": content_type,
            "data": base64.b64encode(data).decode("ascii"),
            "decision": {
                "status": decision.status.value,
                "reason": decision.reason or "",
                "labels": decision.labels_as_dicts(),
                "max_confidence": decision.max_confidence,
            },
            "created_at": now,
            "expires_at": now + self.ttl,
        })

        owner_key = self.owner_key(owner_user_id)
        pipe = self.client.pipeline()
        pipe.set(self.key(token), payload, ex=self.ttl)
        pipe.zadd(owner_key, {token: now})
        pipe.zremrangebyscore(owner_key, "-inf", now - self.ttl)
        pipe.expire(owner_key, self.ttl)
        pipe.execute()

        self._evict_for_owner(owner_key)
        return token

    def redeem(self, token, redeemer_user_id, any_owner=False):
        token = (token or "").strip()
        if not token:
            raise PendingUploadNotFound()

        payload = self._redeem(
            keys=[self.key(token)],
            args=[redeemer_user_id or "", "1" if any_owner else "0", repr(time.time())],
        )
        if payload is None:
            raise PendingUploadNotFound()

        record = json.loads(payload)
        self.client.zrem(self.owner_key(record["owner_user_id"]), token)

        decision_data = record.get("decision", {})
        redeemed = RedeemedUpload(
            token=token,
            owner_user_id=record["owner_user_id"],
            entity_type=EntityType(record["entity_type"]),
            content_type=record["content_type"],
            data=base64.b64decode(record["data"]),
            decision=_decision_from(
                decision_data.get("status", ""),
                decision_data.get("reason", ""),
                decision_data.get("labels", []),
                decision_data.get("max_confidence", 0.0),
            ),
        )
        if not redeemed.decision.approved:
            raise UploadNotApproved()
        return redeemed

    def sweep_expired(self, now=None):
        # Keys expire on the server; nothing to sweep.
        return 0

    def _evict_for_owner(self, owner_key):
        excess = self.client.zcard(owner_key) - self.max_per_owner
        if excess <= 0:
            return
        oldest = self.client.zpopmin(owner_key, excess)
        tokens = [member.decode() if isinstance(member, bytes) else member for member, _ in oldest]
        if tokens:
            self.client.delete(*[self.key(t) for t in tokens])
            logger.info("Evicted %d pending uploads over quota", len(tokens))


def _decision_from(status, reason, labels, max_confidence):
    try:
        status = ModerationStatus(status)
    except ValueError:
        status = ModerationStatus.PENDING_REVIEW
    if status != ModerationStatus.APPROVED and not reason:
        reason = "Image is not approved"
    return ModerationDecision(
        status=status,
        reason=reason,
        labels=[ModerationLabel.from_dict(item) for item in labels or []],
        max_confidence=float(max_confidence or 0.0),
    )


def _to_redeemed(row):
    return RedeemedUpload(
        token=row.token,
        owner_user_id=row.owner_user_id,
        entity_type=EntityType(row.entity_type),
        content_type=row.content_type,
        data=row.image_data,
        decision=_decision_from(
            row.decision_status,
            row.decision_reason,
            row.moderation_labels,
            row.moderation_max_confidence,
        ),
    )


def build_store(app):
    backend = app.config.get("PENDING_STORE_BACKEND", "database")
    ttl = app.config.get("PENDING_UPLOAD_TTL", DEFAULT_TTL)
    max_per_owner = app.config.get("PENDING_UPLOAD_MAX_PER_OWNER", DEFAULT_MAX_PER_OWNER)
    if backend == "redis":
        return RedisPendingStore(
            ext.redis_client,
            ttl=ttl,
            max_per_owner=max_per_owner,
            prefix=app.config.get("PENDING_REDIS_PREFIX", "pending-upload:"),
        )
    return SqlPendingStore(ttl=ttl, max_per_owner=max_per_owner)


def get_pending_store():
    """Return the app's pending store, building it on first use."""
    store = current_app.extensions.get("pending_store")
    if store is None:
        store = build_store(current_app)
        current_app.extensions["pending_store"] = store
    return store
