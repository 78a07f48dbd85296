"""Tests for the SQL-backed pending upload store."""
import threading
from datetime import datetime, timedelta, timezone
import pytest
from imagegate import create_app
from imagegate.config import TestingConfig
from imagegate.extensions import db as _db
from imagegate.errors import PendingUploadNotFound, UploadNotApproved
from imagegate.models.enums import EntityType, ModerationStatus
from imagegate.models.pending_upload import PendingUpload
from imagegate.services.moderation import ModerationDecision, ModerationLabel
from imagegate.services.pending_store import SqlPendingStore, get_pending_store

APPROVED = ModerationDecision(
    status=ModerationStatus.APPROVED,
    reason="Approved",
    labels=[ModerationLabel(name="Suggestive", confidence=8.0)],
    max_confidence=8.0,
)


def _create(store, owner="u1", data=b"png-bytes"):
    return store.create_pending(owner, EntityType.GEAR, "image/png", data, APPROVED)


def test_create_and_redeem(app):
    store = SqlPendingStore(ttl=600)
    token = _create(store)

    redeemed = store.redeem(token, "u1")
    assert redeemed.owner_user_id == "u1"
    assert redeemed.entity_type == EntityType.GEAR
    assert redeemed.content_type == "image/png"
    assert redeemed.data == b"png-bytes"
    assert redeemed.decision.approved
    assert redeemed.decision.max_confidence == 8.0

    row = PendingUpload.query.get(token)
    assert row.consumed is True
    assert row.consumed_at is not None


def test_token_is_single_use(app):
    store = SqlPendingStore()
    token = _create(store)
    store.redeem(token, "u1")

    with pytest.raises(PendingUploadNotFound):
        store.redeem(token, "u1")


def test_tokens_are_unguessable_and_distinct(app):
    store = SqlPendingStore()
    tokens = {_create(store) for _ in range(5)}
    assert len(tokens) == 5
    assert all(len(t) >= 40 for t in tokens)


def test_unknown_and_blank_tokens(app):
    store = SqlPendingStore()
    for token in ("does-not-exist", "", "   ", None):
        with pytest.raises(PendingUploadNotFound):
            store.redeem(token, "u1")


def test_foreign_owner_cannot_redeem_unless_allowed(app):
    store = SqlPendingStore()
    token = _create(store, owner="u1")

    with pytest.raises(PendingUploadNotFound):
        store.redeem(token, "u2")

    # The failed attempt must not burn the token
    redeemed = store.redeem(token, "admin-1", any_owner=True)
    assert redeemed.owner_user_id == "u1"


def test_expired_token_is_not_found_before_sweep(app, db):
    store = SqlPendingStore(ttl=60)
    token = _create(store)

    row = db.session.get(PendingUpload, token)
    row.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    db.session.commit()

    with pytest.raises(PendingUploadNotFound):
        store.redeem(token, "u1")
    assert db.session.get(PendingUpload, token) is not None


def test_expiry_follows_clock(app):
    now = [datetime(2026, 1, 1, tzinfo=timezone.utc)]
    store = SqlPendingStore(ttl=600, clock=lambda: now[0])
    token = _create(store)

    now[0] += timedelta(minutes=11)
    with pytest.raises(PendingUploadNotFound):
        store.redeem(token, "u1")


def test_only_approved_uploads_are_stored(app):
    store = SqlPendingStore()
    rejected = ModerationDecision(status=ModerationStatus.REJECTED, reason="Not allowed")
    with pytest.raises(UploadNotApproved):
        store.create_pending("u1", EntityType.GEAR, "image/png", b"x", rejected)
    assert PendingUpload.query.count() == 0


def test_tampered_decision_is_not_approved(app, db):
    store = SqlPendingStore()
    token = _create(store)
    row = db.session.get(PendingUpload, token)
    row.decision_status = "REJECTED"
    row.decision_reason = "Not allowed"
    db.session.commit()

    with pytest.raises(UploadNotApproved):
        store.redeem(token, "u1")


def test_owner_quota_evicts_oldest(app):
    now = [datetime(2026, 1, 1, tzinfo=timezone.utc)]
    store = SqlPendingStore(ttl=600, max_per_owner=2, clock=lambda: now[0])

    first = _create(store)
    now[0] += timedelta(seconds=1)
    second = _create(store)
    now[0] += timedelta(seconds=1)
    third = _create(store)
    other_owner = _create(store, owner="u2")

    with pytest.raises(PendingUploadNotFound):
        store.redeem(first, "u1")
    assert store.redeem(second, "u1").data == b"png-bytes"
    assert store.redeem(third, "u1").data == b"png-bytes"
    assert store.redeem(other_owner, "u2").owner_user_id == "u2"


def test_sweep_removes_expired_and_consumed(app):
    now = [datetime(2026, 1, 1, tzinfo=timezone.utc)]
    store = SqlPendingStore(ttl=60, clock=lambda: now[0])
    consumed = _create(store)
    store.redeem(consumed, "u1")
    expired = _create(store)
    now[0] += timedelta(seconds=30)
    live = _create(store)

    now[0] += timedelta(seconds=45)
    removed = store.sweep_expired()

    assert removed == 2
    assert PendingUpload.query.get(consumed) is None
    assert PendingUpload.query.get(expired) is None
    assert PendingUpload.query.get(live) is not None


def test_app_store_uses_configured_backend(app):
    store = get_pending_store()
    assert isinstance(store, SqlPendingStore)
    assert store.ttl == app.config["PENDING_UPLOAD_TTL"]
    assert get_pending_store() is store


@pytest.fixture
def file_app(tmp_path, monkeypatch):
    """App on a file-backed SQLite database shared by several threads."""
    monkeypatch.setattr(
        TestingConfig, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{tmp_path / 'pending.db'}"
    )
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
    yield app
    with app.app_context():
        _db.drop_all()
        _db.engine.dispose()


def test_concurrent_redeem_has_one_winner(file_app):
    store = SqlPendingStore()
    with file_app.app_context():
        token = _create(store)

    outcomes = []
    barrier = threading.Barrier(8)

    def attempt():
        with file_app.app_context():
            barrier.wait()
            try:
                store.redeem(token, "u1")
                outcomes.append("ok")
            except PendingUploadNotFound:
                outcomes.append("not_found")

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["not_found"] * 7 + ["ok"]
