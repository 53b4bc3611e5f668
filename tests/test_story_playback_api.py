"""Integration tests covering the story feed and playback session endpoints."""
from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete
from starlette.websockets import WebSocketDisconnect

# Ensure FastAPI initialises against a dedicated sqlite database when running these tests.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_storyplay.db")
os.environ.setdefault("DISABLE_SESSION_PRUNING", "true")

from storyplay.database import Base, SessionLocal, engine  # noqa: E402
from storyplay.main import app  # noqa: E402
from storyplay.models import Story, User  # noqa: E402
from storyplay.services import MediaKind, list_active_items  # noqa: E402

_NOW = datetime.now(timezone.utc)


@pytest.fixture(scope="module", autouse=True)
def _create_schema() -> Iterator[None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_database() -> Iterator[None]:
    with SessionLocal() as session:
        session.execute(delete(Story))
        session.execute(delete(User))
        session.commit()
    yield


@pytest.fixture(scope="module")
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_factory() -> Callable[[str], User]:
    def _factory(username: str) -> User:
        with SessionLocal() as session:
            user = User(username=username, display_name=username.title())
            session.add(user)
            session.commit()
            session.refresh(user)
            return user
    return _factory


@pytest.fixture
def story_factory() -> Callable[..., Story]:
    def _factory(
        user_id: uuid.UUID,
        minutes_ago: int,
        *,
        content_type: str = "image/jpeg",
        duration_ms: int | None = None,
        expires_in: timedelta = timedelta(hours=24),
    ) -> Story:
        created = _NOW - timedelta(minutes=minutes_ago)
        with SessionLocal() as session:
            story = Story(
                user_id=user_id,
                media_url=f"https://cdn.example.test/{uuid.uuid4()}",
                media_content_type=content_type,
                duration_ms=duration_ms,
                created_at=created,
                expires_at=created + expires_in,
            )
            session.add(story)
            session.commit()
            session.refresh(story)
            return story
    return _factory


def _receive_until(websocket, predicate: Callable[[dict[str, Any]], bool], limit: int = 200) -> dict[str, Any]:
    for _ in range(limit):
        message = websocket.receive_json()
        if predicate(message):
            return message
    raise AssertionError("expected websocket message never arrived")


def test_create_story_returns_item(client: TestClient, user_factory) -> None:
    author = user_factory("alice")

    response = client.post(
        "/stories/",
        json={
            "user_id": str(author.id),
            "media_url": "https://cdn.example.test/clip.mp4",
            "media_content_type": "video/mp4",
            "duration_ms": 12000,
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["kind"] == "video"
    assert data["duration_ms"] == 12000


def test_create_image_story_uses_reference_duration(client: TestClient, user_factory) -> None:
    author = user_factory("bob")

    response = client.post(
        "/stories/",
        json={"user_id": str(author.id), "media_url": "https://cdn.example.test/a.png", "duration_ms": 999},
    )

    assert response.status_code == 201
    assert response.json()["kind"] == "image"
    assert response.json()["duration_ms"] == 5000


def test_create_story_for_unknown_user_returns_404(client: TestClient) -> None:
    response = client.post(
        "/stories/",
        json={"user_id": str(uuid.uuid4()), "media_url": "https://cdn.example.test/a.png"},
    )
    assert response.status_code == 404


def test_feed_groups_stories_by_first_seen_author(client: TestClient, user_factory, story_factory) -> None:
    alice = user_factory("alice")
    bob = user_factory("bob")
    first = story_factory(alice.id, 30)
    second = story_factory(bob.id, 20)
    third = story_factory(alice.id, 10)
    story_factory(bob.id, 60 * 30, expires_in=timedelta(hours=24))

    response = client.get("/stories/feed")

    assert response.status_code == 200
    buckets = response.json()["items"]
    assert [bucket["user"]["username"] for bucket in buckets] == ["alice", "bob"]
    assert [story["id"] for story in buckets[0]["stories"]] == [str(first.id), str(third.id)]
    assert [story["id"] for story in buckets[1]["stories"]] == [str(second.id)]


def test_active_items_skip_expired_and_keep_orphans_for_the_builder(user_factory, story_factory) -> None:
    alice = user_factory("alice")
    story_factory(alice.id, 5, expires_in=timedelta(minutes=1))
    video = story_factory(alice.id, 4, content_type="video/mp4", duration_ms=8000)
    orphan = story_factory(uuid.uuid4(), 3)

    with SessionLocal() as session:
        items = list_active_items(session)

    assert [item.id for item in items] == [video.id, orphan.id]
    assert items[0].kind is MediaKind.VIDEO
    assert items[0].duration_ms == 8000
    assert items[1].author is None


def test_open_session_starts_at_first_story(client: TestClient, user_factory, story_factory) -> None:
    alice = user_factory("alice")
    first = story_factory(alice.id, 10)
    story_factory(alice.id, 5)

    response = client.post("/playback/sessions")

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "playing"
    assert data["item_id"] == str(first.id)
    assert data["author_id"] == str(alice.id)
    assert (data["author_index"], data["item_index"]) == (0, 0)
    assert len(data["segments"]) == 2


def test_open_session_with_start_item(client: TestClient, user_factory, story_factory) -> None:
    alice = user_factory("alice")
    bob = user_factory("bob")
    story_factory(alice.id, 10)
    target = story_factory(bob.id, 5)

    response = client.post("/playback/sessions", json={"start_item_id": str(target.id)})

    assert response.status_code == 201
    data = response.json()
    assert (data["author_index"], data["item_index"]) == (1, 0)
    assert data["has_previous"] is True


def test_open_session_without_stories_is_closed(client: TestClient) -> None:
    response = client.post("/playback/sessions")

    assert response.status_code == 201
    data = response.json()
    assert data["closed"] is True
    assert data["status"] == "closed"
    assert data["item_id"] is None


def test_session_commands(client: TestClient, user_factory, story_factory) -> None:
    alice = user_factory("alice")
    bob = user_factory("bob")
    story_factory(alice.id, 30)
    second = story_factory(alice.id, 20)
    story_factory(bob.id, 10)
    session_id = client.post("/playback/sessions").json()["session_id"]
    commands = f"/playback/sessions/{session_id}/commands"

    paused = client.post(commands, json={"action": "pause"}).json()
    assert paused["paused"] is True
    assert paused["status"] == "paused"

    moved = client.post(commands, json={"action": "next"}).json()
    assert moved["item_id"] == str(second.id)
    assert moved["elapsed_ratio"] == 0.0
    assert moved["paused"] is True

    jumped = client.post(commands, json={"action": "jump", "author_index": 1, "item_index": 0}).json()
    assert (jumped["author_index"], jumped["item_index"]) == (1, 0)

    tapped = client.post(commands, json={"action": "tap", "position": 0.1}).json()
    assert (tapped["author_index"], tapped["item_index"]) == (0, 1)

    resumed = client.post(commands, json={"action": "toggle"}).json()
    assert resumed["status"] == "playing"

    closed = client.post(commands, json={"action": "close"}).json()
    assert closed["closed"] is True

    after_close = client.post(commands, json={"action": "next"}).json()
    assert after_close["closed"] is True


def test_invalid_jump_returns_422_and_keeps_state(client: TestClient, user_factory, story_factory) -> None:
    alice = user_factory("alice")
    story_factory(alice.id, 10)
    session_id = client.post("/playback/sessions").json()["session_id"]
    commands = f"/playback/sessions/{session_id}/commands"
    client.post(commands, json={"action": "pause"})

    response = client.post(commands, json={"action": "jump", "author_index": 3, "item_index": 0})

    assert response.status_code == 422
    state = client.get(f"/playback/sessions/{session_id}").json()
    assert (state["author_index"], state["item_index"]) == (0, 0)


def test_jump_without_indices_is_rejected(client: TestClient, user_factory, story_factory) -> None:
    alice = user_factory("alice")
    story_factory(alice.id, 10)
    session_id = client.post("/playback/sessions").json()["session_id"]

    response = client.post(f"/playback/sessions/{session_id}/commands", json={"action": "jump"})

    assert response.status_code == 422


def test_duration_report_endpoint(client: TestClient, user_factory, story_factory) -> None:
    alice = user_factory("alice")
    video = story_factory(alice.id, 10, content_type="video/mp4", duration_ms=9000)
    other = story_factory(alice.id, 5)
    session_id = client.post("/playback/sessions").json()["session_id"]
    endpoint = f"/playback/sessions/{session_id}/duration"

    ignored = client.post(endpoint, json={"item_id": str(other.id), "duration_ms": 3000}).json()
    assert ignored["applied"] is False

    applied = client.post(endpoint, json={"item_id": str(video.id), "duration_ms": 15000}).json()
    assert applied["applied"] is True
    assert applied["session"]["item_id"] == str(video.id)

    rejected = client.post(endpoint, json={"item_id": str(video.id), "duration_ms": 0})
    assert rejected.status_code == 422


def test_unknown_session_returns_404(client: TestClient) -> None:
    missing = uuid.uuid4()
    assert client.get(f"/playback/sessions/{missing}").status_code == 404
    assert client.post(f"/playback/sessions/{missing}/commands", json={"action": "next"}).status_code == 404
    assert client.delete(f"/playback/sessions/{missing}").status_code == 404


def test_delete_session_discards_it(client: TestClient, user_factory, story_factory) -> None:
    alice = user_factory("alice")
    story_factory(alice.id, 10)
    session_id = client.post("/playback/sessions").json()["session_id"]

    assert client.delete(f"/playback/sessions/{session_id}").status_code == 204
    assert client.get(f"/playback/sessions/{session_id}").status_code == 404


def test_websocket_streams_state_and_accepts_commands(client: TestClient, user_factory, story_factory) -> None:
    alice = user_factory("alice")
    story_factory(alice.id, 20)
    second = story_factory(alice.id, 10)
    session_id = client.post("/playback/sessions").json()["session_id"]

    with client.websocket_connect(f"/ws/playback/{session_id}") as websocket:
        initial = websocket.receive_json()
        assert initial["type"] == "state"
        assert initial["session"]["session_id"] == session_id

        websocket.send_json({"type": "ping"})
        _receive_until(websocket, lambda message: message["type"] == "pong")

        websocket.send_json({"type": "command", "action": "pause"})
        _receive_until(websocket, lambda message: message["type"] == "state" and message["session"]["paused"])

        websocket.send_json({"type": "command", "action": "next"})
        moved = _receive_until(
            websocket,
            lambda message: message["type"] == "state" and message["session"]["item_index"] == 1,
        )
        assert moved["session"]["item_id"] == str(second.id)

        websocket.send_json({"type": "command", "action": "jump", "author_index": 4, "item_index": 0})
        error = _receive_until(websocket, lambda message: message["type"] == "error")
        assert "outside" in error["detail"]

        websocket.send_json({"type": "command", "action": "close"})
        _receive_until(websocket, lambda message: message["type"] == "state" and message["session"]["closed"])


def test_websocket_for_unknown_session_is_rejected(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/ws/playback/{uuid.uuid4()}") as websocket:
            websocket.receive_json()


def test_health_reports_session_count(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
