"""Side effects of finishing a match.

Two entry points share the same persistence port:

* :func:`complete_live_match` is called when the scorer ends a live match. It
  freezes the engine state, records the event result, per-set rows and
  per-player statistics, then hands the payload to the rating service.
* :func:`handle_match_completion` is the stand-alone completion function that
  receives an already built payload (for matches scored elsewhere).
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from ..exceptions import RatingUpdateError
from ..persistence import PersistencePort
from ..scoring import tennis
from ..scoring.tennis import MatchCompletionPayload
from ..time_utils import utcnow
from .rating import RatingUpdate, game_percentage, read_settings, update_ratings
from .steps import Step, StepResult, raise_for_failures, run_steps
from .validation import validate_completion_ids

logger = logging.getLogger(__name__)

COMPLETED = "completed"


@dataclass(frozen=True)
class CompletionOutcome:
    payload: MatchCompletionPayload
    rating: RatingUpdate | None
    rating_error: str | None = None


def completion_steps(
    store: PersistencePort,
    payload: MatchCompletionPayload,
    state: Dict,
    player_ids: Dict[str, str],
    *,
    recorded_by: str | None,
    now: datetime,
) -> list[Step]:
    set_rows = [
        {
            "event_id": payload.event_id,
            "set_number": number,
            "team_a_score": s["A"],
            "team_b_score": s["B"],
            "recorded_by": recorded_by,
            "created_at": now,
        }
        for number, s in enumerate(state["setHistory"], start=1)
    ]
    stats = tennis.statistics(state)
    stat_rows = [
        {
            "event_id": payload.event_id,
            "player_id": player_ids[side],
            "aces": stats[side]["aces"],
            "winners": stats[side]["winners"],
            "errors": stats[side]["errors"],
            "points_won": stats[side]["pointsWon"],
            "created_at": now,
        }
        for side in tennis.SIDES
    ]
    return [
        Step(
            "event_status",
            lambda: store.update_event(
                payload.event_id,
                {"status": COMPLETED, "winner_id": payload.winner_id, "completed_at": now},
            ),
        ),
        Step("set_scores", lambda: store.insert_rows("match_score", set_rows)),
        Step("match_statistics", lambda: store.insert_rows("match_statistics", stat_rows)),
    ]


async def complete_live_match(
    store: PersistencePort,
    state: Dict,
    *,
    match_id: str,
    event_id: str,
    player_ids: Dict[str, str],
    recorded_by: str | None = None,
    now: datetime | None = None,
) -> CompletionOutcome:
    """End a live match and run every completion side effect.

    ``tennis.ScoringError`` propagates untouched when the match is not over.
    Failed completion writes are reported together as one
    ``DependencyWriteError`` and the rating update is skipped. A failing
    rating update is logged and reported on the outcome; the event stays
    completed.
    """

    payload = tennis.end_match(
        state, match_id=match_id, event_id=event_id, player_ids=player_ids
    )
    now = now or utcnow()
    results: list[StepResult] = await run_steps(
        completion_steps(store, payload, state, player_ids, recorded_by=recorded_by, now=now),
        stop_on_error=False,
        context=f"event {event_id}",
    )
    raise_for_failures(results, f"completion of event {event_id}")

    try:
        rating = await update_ratings(store, payload, now=now)
    except RatingUpdateError as exc:
        logger.error("Rating update for match %s failed: %s", match_id, exc.detail)
        return CompletionOutcome(payload=payload, rating=None, rating_error=exc.detail)
    return CompletionOutcome(payload=payload, rating=rating)


async def handle_match_completion(
    store: PersistencePort,
    payload: MatchCompletionPayload,
    *,
    now: datetime | None = None,
) -> RatingUpdate:
    """Mark the event completed and update both players' ratings.

    Invalid ids, an empty score summary and unreadable settings are rejected
    before anything is written. The status write happens before the rating
    computation and is not reverted if the rating update fails.
    """

    validate_completion_ids(
        payload.match_id, payload.event_id, payload.winner_id, payload.loser_id
    )
    game_percentage(payload.sets)
    settings = await read_settings(store, payload.match_id)
    now = now or utcnow()
    results = await run_steps(
        [
            Step(
                "event_status",
                lambda: store.update_event(
                    payload.event_id,
                    {"status": COMPLETED, "winner_id": payload.winner_id, "completed_at": now},
                ),
            )
        ],
        context=f"event {payload.event_id}",
    )
    raise_for_failures(results, f"completion of event {payload.event_id}")
    return await update_ratings(store, payload, settings, now=now)
