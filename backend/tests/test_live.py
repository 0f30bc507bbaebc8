import os, sys, asyncio

# Ensure the app package is importable and main.py passes its CORS checks
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:3000")

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from slowapi.errors import RateLimitExceeded
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import RATING_SETTINGS_ID
from app.db import Base, get_session
from app.exceptions import DomainException
from app.main import domain_exception_handler, http_exception_handler
from app.models import Event, MatchScore, MatchStatistics, Profile, ScoreEvent, SystemSetting
from app.rate_limit import limiter, rate_limit_handler
from app.routers import completion, live


@pytest.fixture()
def client_and_session(monkeypatch):
    """Create a FastAPI TestClient with an in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async_session_maker = sessionmaker(
        engine, expire_on_commit=False, class_=AsyncSession
    )

    async def init_models():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())

    async def override_get_session():
        async with async_session_maker() as session:
            yield session

    sent = []

    async def record_broadcast(eid: str, message: dict) -> None:
        sent.append((eid, message))

    monkeypatch.setattr(live, "broadcast", record_broadcast)

    app = FastAPI()
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.include_router(live.router)
    app.include_router(completion.router)
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client, async_session_maker, sent
    asyncio.run(engine.dispose())


def seed(session_maker, *, settings=True) -> None:
    async def _seed():
        async with session_maker() as session:
            if settings:
                session.add(
                    SystemSetting(
                        id=RATING_SETTINGS_ID,
                        provisional_k_factor=32.0,
                        established_k_factor=16.0,
                        initial_rating=1200.0,
                        matches_for_established=10,
                        rating_scale_min=100.0,
                        rating_scale_max=3000.0,
                    )
                )
            session.add_all(
                [
                    Profile(id="pa", full_name="Ana", current_rating=1000.0),
                    Profile(id="pb", full_name="Bea", current_rating=1000.0),
                ]
            )
            await session.commit()

    asyncio.run(_seed())


def start_match(client, server="A") -> str:
    resp = client.post(
        "/events", json={"playerAId": "pa", "playerBId": "pb", "server": server}
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


def point(client, eid, side, **extra):
    return client.post(f"/events/{eid}/live/events", json={"type": "POINT", "by": side, **extra})


def fetch(session_maker, fn):
    async def _fetch():
        async with session_maker() as session:
            return await fn(session)

    return asyncio.run(_fetch())


def test_create_live_match_and_read_scoreboard(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    eid = start_match(client, server="B")

    resp = client.get(f"/events/{eid}/live")
    assert resp.status_code == 200
    board = resp.json()
    assert board["status"] == "live"
    assert board["serving"] == "B"
    assert board["points"] == {"A": 0, "B": 0}
    assert board["display"] == {"A": "0", "B": "0"}
    assert board["clock"] == "00:00:00"
    assert board["log"] == []


def test_create_live_match_unknown_player(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    resp = client.post("/events", json={"playerAId": "pa", "playerBId": "ghost"})
    assert resp.status_code == 404
    assert resp.json()["code"] == "profile_not_found"

    resp = client.post("/events", json={"playerAId": "pa", "playerBId": "pa"})
    assert resp.status_code == 422


def test_scoreboard_for_unknown_event(client_and_session):
    client, _, _ = client_and_session
    resp = client.get("/events/nope/live")
    assert resp.status_code == 404
    assert resp.json()["code"] == "event_not_found"


def test_points_advance_game_and_are_stored_in_order(client_and_session):
    client, session_maker, sent = client_and_session
    seed(session_maker)
    eid = start_match(client)

    for side in ["A", "A", "A", "B", "B", "A"]:
        resp = point(client, eid, side)
        assert resp.status_code == 200, resp.text
    board = resp.json()
    assert board["games"] == {"A": 1, "B": 0}
    assert board["serving"] == "B"
    assert board["log"][0]["action"] == "Ana won the game"
    assert len(sent) == 6
    assert sent[-1][1]["scoreboard"]["games"] == {"A": 1, "B": 0}

    rows = fetch(
        session_maker,
        lambda s: s.execute(
            select(ScoreEvent).where(ScoreEvent.event_id == eid).order_by(ScoreEvent.seq)
        ),
    ).scalars().all()
    assert [r.seq for r in rows] == [1, 2, 3, 4, 5, 6]
    event = fetch(session_maker, lambda s: s.get(Event, eid))
    assert event.details["games"] == {"A": 1, "B": 0}


def test_ace_by_receiver_is_rejected(client_and_session):
    client, session_maker, sent = client_and_session
    seed(session_maker)
    eid = start_match(client, server="A")

    resp = client.post(f"/events/{eid}/live/events", json={"type": "ACE", "by": "B"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "match_event_invalid"
    assert sent == []
    rows = fetch(session_maker, lambda s: s.execute(select(ScoreEvent))).scalars().all()
    assert rows == []


@pytest.mark.parametrize(
    "body",
    [
        {"type": "POINT"},
        {"type": "SERVE", "by": "A"},
        {"type": "TICK", "seconds": -3},
        {"type": "ACE", "by": "A", "kind": "WINNER"},
    ],
)
def test_malformed_events_fail_validation(client_and_session, body):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    eid = start_match(client)
    resp = client.post(f"/events/{eid}/live/events", json=body)
    assert resp.status_code == 422


def test_undo_skips_ticks(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    eid = start_match(client)

    point(client, eid, "A", kind="WINNER")
    client.post(f"/events/{eid}/live/events", json={"type": "TICK", "seconds": 5})
    resp = client.post(f"/events/{eid}/live/undo")
    assert resp.status_code == 200
    board = resp.json()
    assert board["points"] == {"A": 0, "B": 0}
    assert board["statistics"]["A"]["winners"] == 0
    assert board["elapsed"] == 5

    resp = client.post(f"/events/{eid}/live/undo")
    assert resp.status_code == 409
    assert resp.json()["code"] == "match_nothing_to_undo"


def test_timer_pause_through_api(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    eid = start_match(client)

    client.post(f"/events/{eid}/live/events", json={"type": "TICK", "seconds": 65})
    client.post(f"/events/{eid}/live/events", json={"type": "PAUSE"})
    resp = client.post(f"/events/{eid}/live/events", json={"type": "TICK", "seconds": 30})
    board = resp.json()
    assert board["elapsed"] == 65
    assert board["clock"] == "00:01:05"
    assert board["running"] is False


def test_record_sets_then_end_match(client_and_session):
    client, session_maker, sent = client_and_session
    seed(session_maker)
    eid = start_match(client)

    resp = client.post(f"/events/{eid}/sets", json={"sets": [{"A": 6, "B": 2}, {"A": 6, "B": 3}]})
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"ok": True, "added": 4 * 17, "complete": True}

    board = client.get(f"/events/{eid}/live").json()
    assert board["complete"] is True
    assert board["winner"] == "A"
    assert board["setHistory"] == [{"A": 6, "B": 2}, {"A": 6, "B": 3}]

    resp = point(client, eid, "B")
    assert resp.status_code == 409
    assert resp.json()["code"] == "match_decided"

    resp = client.post(f"/events/{eid}/live/end", json={"recordedBy": "pa"})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["payload"]["winnerId"] == "pa"
    assert data["payload"]["scoreSummary"]["sets"] == [
        {"teamA": 6, "teamB": 2},
        {"teamA": 6, "teamB": 3},
    ]
    assert data["ratings"] == {"winnerNewRating": 1007, "loserNewRating": 993}
    assert data["ratingError"] is None
    assert sent[-1][1]["ended"] is True

    event = fetch(session_maker, lambda s: s.get(Event, eid))
    assert event.status == "completed"
    assert event.winner_id == "pa"
    scores = fetch(
        session_maker,
        lambda s: s.execute(select(MatchScore).order_by(MatchScore.set_number)),
    ).scalars().all()
    assert [(m.team_a_score, m.team_b_score, m.recorded_by) for m in scores] == [
        (6, 2, "pa"),
        (6, 3, "pa"),
    ]
    stats = fetch(session_maker, lambda s: s.execute(select(MatchStatistics))).scalars().all()
    assert len(stats) == 2
    winner = fetch(session_maker, lambda s: s.get(Profile, "pa"))
    assert winner.current_rating == 1007
    assert winner.matches_played == 1

    assert client.get(f"/events/{eid}/live").json()["status"] == "completed"
    resp = point(client, eid, "A")
    assert resp.status_code == 409
    assert resp.json()["code"] == "match_already_completed"
    assert client.post(f"/events/{eid}/live/undo").status_code == 409
    assert client.post(f"/events/{eid}/live/end").status_code == 409


def test_end_match_before_two_sets(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    eid = start_match(client)
    client.post(f"/events/{eid}/sets", json={"sets": [{"A": 6, "B": 2}]})

    resp = client.post(f"/events/{eid}/live/end")
    assert resp.status_code == 400
    assert resp.json()["code"] == "match_not_complete"
    event = fetch(session_maker, lambda s: s.get(Event, eid))
    assert event.status == "live"


def test_end_match_reports_rating_failure(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker, settings=False)
    eid = start_match(client)
    client.post(f"/events/{eid}/sets", json={"sets": [{"A": 2, "B": 6}, {"A": 4, "B": 6}]})

    resp = client.post(f"/events/{eid}/live/end")
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["payload"]["winnerId"] == "pb"
    assert data["ratings"] is None
    assert "rating settings" in data["ratingError"]
    event = fetch(session_maker, lambda s: s.get(Event, eid))
    assert event.status == "completed"


@pytest.mark.parametrize(
    "sets",
    [
        [{"A": 6, "B": 6}],
        [{"A": 9, "B": 2}],
        [{"A": 6, "B": 5}],
        [],
    ],
)
def test_record_sets_rejects_invalid_scores(client_and_session, sets):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    eid = start_match(client)
    resp = client.post(f"/events/{eid}/sets", json={"sets": sets})
    assert resp.status_code == 422
    assert resp.json()["code"] == "match_validation_error"


def _completion_body(**overrides):
    body = {
        "matchId": "m1",
        "eventId": "e1",
        "winnerId": "pa",
        "loserId": "pb",
        "scoreSummary": {"sets": [{"teamA": 6, "teamB": 2}, {"teamA": 6, "teamB": 3}]},
    }
    body.update(overrides)
    return body


def _seed_event(session_maker, eid="e1"):
    async def _seed():
        async with session_maker() as session:
            session.add(Event(id=eid, status="live"))
            await session.commit()

    asyncio.run(_seed())


def test_complete_match_endpoint(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    _seed_event(session_maker)

    resp = client.post("/matches/complete", json=_completion_body())
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"winnerNewRating": 1007, "loserNewRating": 993}
    event = fetch(session_maker, lambda s: s.get(Event, "e1"))
    assert event.status == "completed"


def test_complete_match_endpoint_errors(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    _seed_event(session_maker)

    resp = client.post("/matches/complete", json=_completion_body(loserId="pa"))
    assert resp.status_code == 422
    assert resp.json()["code"] == "match_validation_error"

    resp = client.post(
        "/matches/complete",
        json=_completion_body(scoreSummary={"sets": [{"teamA": 0, "teamB": 0}]}),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "rating_degenerate_input"

    resp = client.post("/matches/complete", json=_completion_body(loserId="ghost"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "rating_read_failed"

    resp = client.post("/matches/complete", json={"matchId": "m1"})
    assert resp.status_code == 422


def test_complete_match_endpoint_unknown_event(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)

    resp = client.post("/matches/complete", json=_completion_body(eventId="missing"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "rating_write_failed"
    winner = fetch(session_maker, lambda s: s.get(Profile, "pa"))
    assert winner.current_rating == 1000.0


def test_end_match_survives_failed_history_write(client_and_session):
    client, session_maker, sent = client_and_session
    seed(session_maker)
    eid = start_match(client)
    client.post(f"/events/{eid}/sets", json={"sets": [{"A": 6, "B": 2}, {"A": 6, "B": 3}]})

    async def break_history(session):
        await session.execute(
            text(
                "CREATE TRIGGER history_down BEFORE INSERT ON ranking_history "
                "BEGIN SELECT RAISE(ABORT, 'history down'); END"
            )
        )
        await session.commit()

    fetch(session_maker, break_history)

    resp = client.post(f"/events/{eid}/live/end")
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["ratings"] is None
    assert "ranking_history" in data["ratingError"]
    assert sent[-1][1]["ended"] is True
    assert sent[-1][1]["scoreboard"]["status"] == "completed"

    event = fetch(session_maker, lambda s: s.get(Event, eid))
    assert event.status == "completed"
    assert event.details["running"] is False


def test_end_match_stores_final_scoreboard(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    eid = start_match(client)
    client.post(f"/events/{eid}/sets", json={"sets": [{"A": 6, "B": 2}, {"A": 6, "B": 3}]})
    client.post(f"/events/{eid}/live/events", json={"type": "TICK", "seconds": 5})

    resp = client.post(f"/events/{eid}/live/end")
    assert resp.status_code == 200, resp.text
    event = fetch(session_maker, lambda s: s.get(Event, eid))
    assert event.details["running"] is False
    assert event.details["complete"] is True
    assert event.details["setHistory"] == [{"A": 6, "B": 2}, {"A": 6, "B": 3}]


def test_record_sets_refused_mid_game(client_and_session):
    client, session_maker, _ = client_and_session
    seed(session_maker)
    eid = start_match(client)
    for _ in range(4):
        point(client, eid, "A")

    resp = client.post(
        f"/events/{eid}/sets",
        json={"sets": [{"A": 6, "B": 4}, {"A": 4, "B": 6}, {"A": 6, "B": 4}]},
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "match_validation_error"
    board = client.get(f"/events/{eid}/live").json()
    assert board["games"] == {"A": 1, "B": 0}
    assert board["setHistory"] == []
