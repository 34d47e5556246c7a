from __future__ import annotations

import uuid
from datetime import timedelta

import httpx
import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from listing_api.clock import utcnow
from listing_api.models import Base, Generation, StagingQueueEntry, StagingRateLimit, StagingStatus, SubscriptionTier, UserProfile
from listing_api.services import staging_queue
from listing_api.services.staging_queue import (
    get_staging_status,
    process_staging_queue,
    reconcile_entry,
    stage_photo,
    submit_entry,
    validate_image_url,
)
from listing_api.settings import settings

PHOTO = "https://cdn.example.com/photos/living_room.jpg"


def _generation(db, user_id: uuid.UUID) -> Generation:
    generation = Generation(user_id=user_id, address="12 Tradd St, Charleston, SC 29401", mls_description="Charming home.")
    db.add(generation)
    db.flush()
    return generation


def test_image_url_must_be_supported_format() -> None:
    assert validate_image_url("https://cdn.example.com/a.JPG?size=large") is None
    assert validate_image_url("https://cdn.example.com/a.webp") is None
    assert validate_image_url("https://cdn.example.com/a.gif") == "Image must be in JPG, PNG, or WebP format"


def test_stage_photo_queues_and_charges_credit(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.STARTER)
    entry = stage_photo(sqlite_session, profile, PHOTO, "living_room", "coastal_modern")

    assert entry.status == StagingStatus.PENDING
    assert entry.provider_job_id is None
    assert profile.staging_credits_used_this_month == 1
    assert profile.total_stagings_generated == 1


def test_stage_photo_rejects_bad_inputs(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.PRO)

    with pytest.raises(HTTPException) as exc:
        stage_photo(sqlite_session, profile, "https://cdn.example.com/a.gif", "bedroom", "luxury")
    assert exc.value.detail["code"] == "INVALID_IMAGE"

    with pytest.raises(HTTPException) as exc:
        stage_photo(sqlite_session, profile, PHOTO, "bedroom", "luxury", generation_id=uuid.uuid4())
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        stage_photo(sqlite_session, profile, "https://cdn.example.com/front-exterior.jpg", "bedroom", "luxury")
    assert exc.value.detail["code"] == "UNSUITABLE_PHOTO"
    assert exc.value.detail["message"] == "Exterior photo"
    assert profile.staging_credits_used_this_month == 0


def test_stage_photo_rejects_other_users_generation(sqlite_session, make_profile) -> None:
    owner = make_profile(SubscriptionTier.PRO)
    other = make_profile(SubscriptionTier.PRO)
    generation = _generation(sqlite_session, owner.id)
    with pytest.raises(HTTPException) as exc:
        stage_photo(sqlite_session, other, PHOTO, "bedroom", "luxury", generation_id=generation.id)
    assert exc.value.status_code == 404


def test_submit_then_reconcile_appends_staged_image(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.PRO)
    generation = _generation(sqlite_session, profile.id)
    entry = stage_photo(sqlite_session, profile, PHOTO, "living_room", "coastal_modern", generation_id=generation.id)

    assert submit_entry(sqlite_session, entry) is True
    assert entry.status == StagingStatus.PROCESSING
    assert entry.provider == "mock"

    reconcile_entry(sqlite_session, entry)
    assert entry.status == StagingStatus.COMPLETED
    assert entry.staged_url.endswith(f"{entry.provider_job_id}.jpg")
    assert entry.completed_at is not None
    assert generation.staged_images[0]["original_url"] == PHOTO
    assert generation.staged_images[0]["style"] == "coastal_modern"


def test_submit_failure_marks_entry_failed(sqlite_session, make_profile, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "staging_mode", "live")
    monkeypatch.setattr(settings, "staging_api_key", None)
    profile = make_profile(SubscriptionTier.PRO)
    entry = stage_photo(sqlite_session, profile, PHOTO, "bedroom", "luxury")

    assert submit_entry(sqlite_session, entry) is False
    assert entry.status == StagingStatus.FAILED
    assert entry.error_message == "Staging service not configured"
    assert entry.completed_at is not None


def test_provider_reported_failure_fails_entry(sqlite_session, make_profile, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "staging_mode", "live")
    monkeypatch.setattr(settings, "staging_api_key", "primary-key")
    profile = make_profile(SubscriptionTier.PRO)
    entry = StagingQueueEntry(
        user_id=profile.id,
        photo_url=PHOTO,
        room_type="bedroom",
        style="luxury",
        status=StagingStatus.PROCESSING,
        provider="reimagine",
        provider_job_id="rh-7",
    )
    sqlite_session.add(entry)
    sqlite_session.flush()

    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "failed", "error": "blurry"}))
    reconcile_entry(sqlite_session, entry, transport=transport)
    assert entry.status == StagingStatus.FAILED
    assert entry.error_message == "blurry"


def test_still_processing_entry_is_left_alone(sqlite_session, make_profile, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "staging_mode", "live")
    monkeypatch.setattr(settings, "staging_api_key", "primary-key")
    profile = make_profile(SubscriptionTier.PRO)
    entry = StagingQueueEntry(
        user_id=profile.id,
        photo_url=PHOTO,
        room_type="bedroom",
        style="luxury",
        status=StagingStatus.PROCESSING,
        provider="reimagine",
        provider_job_id="rh-8",
    )
    sqlite_session.add(entry)
    sqlite_session.flush()

    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "processing"}))
    reconcile_entry(sqlite_session, entry, transport=transport)
    assert entry.status == StagingStatus.PROCESSING
    assert entry.completed_at is None


def test_queue_tick_submits_and_reconciles(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.PRO_PLUS)
    first = stage_photo(sqlite_session, profile, PHOTO, "living_room", "luxury")
    second = stage_photo(sqlite_session, profile, "https://cdn.example.com/bedroom.png", "bedroom", "farmhouse")

    summary = process_staging_queue(sqlite_session)
    assert summary == {"processed": 2, "failed": 0, "reconciled": 2, "completed": 2}
    assert first.status == StagingStatus.COMPLETED
    assert second.status == StagingStatus.COMPLETED

    assert process_staging_queue(sqlite_session) == {"processed": 0, "failed": 0, "reconciled": 0, "completed": 0}


def test_status_lookup_is_owner_scoped(sqlite_session, make_profile) -> None:
    owner = make_profile(SubscriptionTier.PRO)
    other = make_profile(SubscriptionTier.PRO)
    entry = stage_photo(sqlite_session, owner, PHOTO, "bedroom", "luxury")

    assert get_staging_status(sqlite_session, entry.id, owner.id) == {"status": "pending"}
    with pytest.raises(HTTPException) as exc:
        get_staging_status(sqlite_session, entry.id, other.id)
    assert exc.value.status_code == 404

    submit_entry(sqlite_session, entry)
    view = get_staging_status(sqlite_session, entry.id, owner.id)
    assert view["status"] == "completed"
    assert view["staged_url"] == entry.staged_url


def _queued(db, user_id: uuid.UUID, count: int, status: StagingStatus, label: str) -> list[StagingQueueEntry]:
    base = utcnow() - timedelta(hours=1)
    entries = []
    # Inserted newest first so FIFO order has to come from created_at.
    for index in reversed(range(count)):
        entry = StagingQueueEntry(
            user_id=user_id,
            photo_url=f"https://cdn.example.com/{label}-{index:02d}.jpg",
            room_type="bedroom",
            style="luxury",
            status=status,
            created_at=base + timedelta(minutes=index),
        )
        if status == StagingStatus.PROCESSING:
            entry.provider = "mock"
            entry.provider_job_id = f"mock-{label}-{index:02d}"
        db.add(entry)
        entries.append(entry)
    db.flush()
    return sorted(entries, key=lambda item: item.photo_url)


@pytest.fixture()
def submitted_urls(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    seen: list[str] = []
    original = staging_queue.request_staging

    def recording_request(request, transport=None):  # noqa: ANN001
        seen.append(request.image_url)
        if "broken" in request.image_url:
            raise RuntimeError("vendor exploded")
        return original(request, transport=transport)

    monkeypatch.setattr(staging_queue, "request_staging", recording_request)
    return seen


def test_queue_tick_isolates_entry_errors(sqlite_session, make_profile, submitted_urls) -> None:
    profile = make_profile(SubscriptionTier.PRO)
    entries = _queued(sqlite_session, profile.id, 3, StagingStatus.PENDING, "room")
    broken = entries[1]
    broken.photo_url = "https://cdn.example.com/broken.jpg"
    sqlite_session.flush()

    summary = process_staging_queue(sqlite_session)

    assert summary == {"processed": 2, "failed": 1, "reconciled": 2, "completed": 2}
    assert len(submitted_urls) == 3
    assert broken.status == StagingStatus.FAILED
    assert broken.error_message == "vendor exploded"
    assert broken.completed_at is not None
    assert [entries[0].status, entries[2].status] == [StagingStatus.COMPLETED, StagingStatus.COMPLETED]


def test_queue_tick_submits_oldest_first_in_batches_of_ten(sqlite_session, make_profile, submitted_urls) -> None:
    profile = make_profile(SubscriptionTier.PRO_PLUS)
    entries = _queued(sqlite_session, profile.id, 12, StagingStatus.PENDING, "pending")

    summary = process_staging_queue(sqlite_session)

    assert summary["processed"] == 10
    assert submitted_urls == [entry.photo_url for entry in entries[:10]]
    assert [entry.status for entry in entries[10:]] == [StagingStatus.PENDING, StagingStatus.PENDING]

    process_staging_queue(sqlite_session)
    assert submitted_urls[10:] == [entry.photo_url for entry in entries[10:]]


def test_queue_tick_reconciles_at_most_twenty(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.PRO_PLUS)
    entries = _queued(sqlite_session, profile.id, 22, StagingStatus.PROCESSING, "processing")

    summary = process_staging_queue(sqlite_session)

    assert summary == {"processed": 0, "failed": 0, "reconciled": 20, "completed": 20}
    assert all(entry.status == StagingStatus.COMPLETED for entry in entries[:20])
    assert [entry.status for entry in entries[20:]] == [StagingStatus.PROCESSING, StagingStatus.PROCESSING]


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)
    engine.dispose()


def test_rejected_attempts_count_toward_hourly_limit(session_factory) -> None:
    profile_id = uuid.uuid4()
    with session_factory() as db:
        db.add(
            UserProfile(
                id=profile_id,
                email="spent@listing.local",
                subscription_tier=SubscriptionTier.STARTER,
                last_reset_date=utcnow(),
                staging_credits_used_this_month=10,
            )
        )
        db.commit()

    codes: list[str] = []
    for _ in range(8):
        # One session per request, closed without commit on error like get_db.
        with session_factory() as db:
            try:
                stage_photo(db, db.get(UserProfile, profile_id), PHOTO, "bedroom", "luxury")
                db.commit()
            except HTTPException as exc:
                codes.append(exc.detail["code"])

    assert codes == ["STAGING_QUOTA_EXCEEDED"] * 5 + ["RATE_LIMIT_EXCEEDED"] * 3
    with session_factory() as db:
        assert db.get(StagingRateLimit, profile_id).requests_last_hour == 5
