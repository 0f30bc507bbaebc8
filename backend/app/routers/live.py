# backend/app/routers/live.py
import logging
import uuid
from typing import Sequence

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..models import Event, EventParticipant, Profile, ScoreEvent
from ..schemas import (
    EndMatchIn,
    EndMatchOut,
    EventIdOut,
    EventIn,
    LiveMatchCreate,
    RatingUpdateOut,
    ScoreboardOut,
    SetsIn,
)
from .streams import broadcast
from ..scoring import tennis as tennis_engine
from ..services import complete_live_match, validate_set_scores, ValidationError
from ..persistence import SqlAlchemyStore
from ..exceptions import DependencyWriteError, EventNotFound, http_problem
from ..rate_limit import limiter, live_event_rate_limit
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

# Resource-only prefix; versioning is added in main.py
router = APIRouter(prefix="/events", tags=["live"])

LIVE = "live"
COMPLETED = "completed"


async def _get_event(session: AsyncSession, eid: str) -> Event:
    event = await session.get(Event, eid)
    if event is None:
        raise EventNotFound(eid)
    return event


def _ensure_open(event: Event) -> None:
    if event.status == COMPLETED:
        raise http_problem(
            status_code=409,
            detail="match has already been completed",
            code="match_already_completed",
        )


async def _participants(session: AsyncSession, eid: str) -> dict[str, str]:
    parts = (
        await session.execute(
            select(EventParticipant).where(EventParticipant.event_id == eid)
        )
    ).scalars().all()
    return {p.side: p.profile_id for p in parts}


async def _engine_config(
    session: AsyncSession, event: Event, player_ids: dict[str, str]
) -> dict:
    names: dict[str, str] = {}
    if player_ids:
        profiles = (
            await session.execute(
                select(Profile).where(Profile.id.in_(list(player_ids.values())))
            )
        ).scalars().all()
        by_id = {p.id: p for p in profiles}
        for side, pid in player_ids.items():
            profile = by_id.get(pid)
            if profile is not None:
                names[side] = profile.full_name or profile.username or pid
    details = event.details or {}
    return {"names": names, "server": details.get("server", "A")}


async def _score_events(session: AsyncSession, eid: str) -> Sequence[ScoreEvent]:
    return (
        await session.execute(
            select(ScoreEvent).where(ScoreEvent.event_id == eid).order_by(ScoreEvent.seq)
        )
    ).scalars().all()


async def _load_state(session: AsyncSession, event: Event) -> tuple[dict, dict[str, str], Sequence[ScoreEvent]]:
    player_ids = await _participants(session, event.id)
    config = await _engine_config(session, event, player_ids)
    rows = await _score_events(session, event.id)
    state = tennis_engine.replay((r.payload for r in rows), config)
    if event.status == COMPLETED:
        state["ended"] = True
        state["running"] = False
    return state, player_ids, rows


def _scoreboard(event: Event, state: dict) -> ScoreboardOut:
    return ScoreboardOut(
        eventId=event.id, status=event.status, **tennis_engine.summary(state)
    )


def _store_details(event: Event, state: dict) -> None:
    details = dict(event.details or {})
    details.update(tennis_engine.summary(state))
    event.details = details


@router.post("", response_model=EventIdOut)
async def create_live_match(
    body: LiveMatchCreate,
    session: AsyncSession = Depends(get_session),
) -> EventIdOut:
    found = (
        await session.execute(
            select(Profile.id).where(Profile.id.in_([body.playerAId, body.playerBId]))
        )
    ).scalars().all()
    missing = {body.playerAId, body.playerBId} - set(found)
    if missing:
        raise http_problem(
            status_code=404,
            detail=f"unknown player(s): {', '.join(sorted(missing))}",
            code="profile_not_found",
        )

    eid = uuid.uuid4().hex
    state = tennis_engine.init_state({"server": body.server})
    event = Event(
        id=eid,
        status=LIVE,
        created_by=body.createdBy,
        details={"server": body.server, **tennis_engine.summary(state)},
    )
    session.add(event)
    for side, pid in (("A", body.playerAId), ("B", body.playerBId)):
        session.add(
            EventParticipant(
                id=uuid.uuid4().hex, event_id=eid, profile_id=pid, side=side
            )
        )
    await session.commit()
    logger.info("Created live match %s (%s vs %s)", eid, body.playerAId, body.playerBId)
    return EventIdOut(id=eid)


@router.get("/{eid}/live", response_model=ScoreboardOut)
async def get_scoreboard(
    eid: str, session: AsyncSession = Depends(get_session)
) -> ScoreboardOut:
    event = await _get_event(session, eid)
    state, _, _ = await _load_state(session, event)
    return _scoreboard(event, state)


@router.post("/{eid}/live/events", response_model=ScoreboardOut)
@limiter.limit(live_event_rate_limit)
async def append_live_event(
    request: Request,
    eid: str,
    ev: EventIn,
    session: AsyncSession = Depends(get_session),
) -> ScoreboardOut:
    event = await _get_event(session, eid)
    _ensure_open(event)
    state, _, rows = await _load_state(session, event)
    if state["complete"]:
        raise http_problem(
            status_code=409,
            detail="match is decided; end it to record the result",
            code="match_decided",
        )

    payload = ev.payload()
    try:
        state = tennis_engine.apply(payload, state)
    except tennis_engine.ScoringError as exc:
        raise http_problem(
            status_code=400,
            detail=str(exc),
            code="match_event_invalid",
        )

    seq = (rows[-1].seq if rows else 0) + 1
    session.add(
        ScoreEvent(
            id=uuid.uuid4().hex,
            event_id=eid,
            seq=seq,
            type=payload["type"],
            payload=payload,
            created_at=utcnow(),
        )
    )
    _store_details(event, state)
    await session.commit()
    board = _scoreboard(event, state)
    await broadcast(eid, {"event": payload, "scoreboard": board.model_dump()})
    return board


@router.post("/{eid}/live/undo", response_model=ScoreboardOut)
async def undo_live_event(
    eid: str, session: AsyncSession = Depends(get_session)
) -> ScoreboardOut:
    event = await _get_event(session, eid)
    _ensure_open(event)
    _, _, rows = await _load_state(session, event)
    last = next((r for r in reversed(rows) if r.type != "TICK"), None)
    if last is None:
        raise http_problem(
            status_code=409,
            detail="nothing to undo",
            code="match_nothing_to_undo",
        )
    undone = dict(last.payload)
    await session.delete(last)
    await session.flush()

    state, _, _ = await _load_state(session, event)
    _store_details(event, state)
    await session.commit()
    board = _scoreboard(event, state)
    await broadcast(eid, {"undo": undone, "scoreboard": board.model_dump()})
    return board


@router.post("/{eid}/sets")
async def record_sets(
    eid: str,
    body: SetsIn,
    session: AsyncSession = Depends(get_session),
):
    event = await _get_event(session, eid)
    _ensure_open(event)

    sets = [{"A": s.A, "B": s.B} for s in body.sets]
    try:
        validate_set_scores(sets)
    except ValidationError as e:
        raise http_problem(
            status_code=422,
            detail=str(e),
            code="match_validation_error",
        )

    state, _, rows = await _load_state(session, event)
    try:
        new_events, state = tennis_engine.record_sets(
            [(s["A"], s["B"]) for s in sets], state
        )
    except tennis_engine.ScoringError as exc:
        raise http_problem(
            status_code=422,
            detail=str(exc),
            code="match_validation_error",
        )

    seq = rows[-1].seq if rows else 0
    now = utcnow()
    for payload in new_events:
        seq += 1
        session.add(
            ScoreEvent(
                id=uuid.uuid4().hex,
                event_id=eid,
                seq=seq,
                type=payload["type"],
                payload=payload,
                created_at=now,
            )
        )
    _store_details(event, state)
    await session.commit()
    await broadcast(eid, {"scoreboard": _scoreboard(event, state).model_dump()})
    return {"ok": True, "added": len(new_events), "complete": state["complete"]}


@router.post("/{eid}/live/end", response_model=EndMatchOut)
async def end_live_match(
    eid: str,
    body: EndMatchIn | None = None,
    session: AsyncSession = Depends(get_session),
) -> EndMatchOut:
    event = await _get_event(session, eid)
    _ensure_open(event)
    state, player_ids, _ = await _load_state(session, event)

    try:
        outcome = await complete_live_match(
            SqlAlchemyStore(session),
            state,
            match_id=eid,
            event_id=eid,
            player_ids=player_ids,
            recorded_by=body.recordedBy if body else None,
        )
    except tennis_engine.ScoringError as exc:
        raise http_problem(
            status_code=400,
            detail=str(exc),
            code="match_not_complete",
        )
    except DependencyWriteError as exc:
        raise http_problem(
            status_code=500,
            detail=exc.detail,
            code=exc.code,
        )

    # A failed rating write rolls the session back and expires the event
    await session.refresh(event)
    _store_details(event, state)
    await session.commit()

    ratings = None
    if outcome.rating is not None:
        ratings = RatingUpdateOut(
            winnerNewRating=outcome.rating.winner_new_rating,
            loserNewRating=outcome.rating.loser_new_rating,
        )
    await broadcast(
        eid,
        {"ended": True, "scoreboard": _scoreboard(event, state).model_dump()},
    )
    return EndMatchOut(
        payload=outcome.payload.as_dict(),
        ratings=ratings,
        ratingError=outcome.rating_error,
    )
