import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from ..exceptions import DegenerateInputError, DependencyReadError
from ..persistence import PersistencePort, SystemSettings
from ..scoring.tennis import MatchCompletionPayload, OrientedSet
from ..time_utils import utcnow
from ..utils.numbers import clamp, round_half_up
from .steps import Step, raise_for_failures, run_steps
from .validation import ValidationError

logger = logging.getLogger(__name__)

RANKING_TYPE = "singles"
PROVISIONAL = "Provisional"
ESTABLISHED = "Established"
RATING_MILESTONES = (1400, 1600, 1800, 2000)


@dataclass(frozen=True)
class RatingUpdate:
    winner_new_rating: float
    loser_new_rating: float
    rating_change: int

    def as_dict(self) -> dict:
        return {
            "winnerNewRating": self.winner_new_rating,
            "loserNewRating": self.loser_new_rating,
        }


def game_totals(sets: Sequence[OrientedSet]) -> tuple[int, int]:
    """Return ``(winner_games, loser_games)`` summed over all sets.

    The larger number of every set is credited to the match winner. That is
    exact for straight-sets wins; in a three-set match the set the loser took
    still has its larger number credited to the winner.
    """

    winner = sum(max(s.team_a, s.team_b) for s in sets)
    loser = sum(min(s.team_a, s.team_b) for s in sets)
    return winner, loser


def game_percentage(sets: Sequence[OrientedSet]) -> float:
    winner, loser = game_totals(sets)
    total = winner + loser
    if total == 0:
        raise DegenerateInputError("score summary contains no games")
    return winner / total


def expected_score(winner_rating: float, loser_rating: float) -> float:
    return 1 / (1 + 10 ** ((loser_rating - winner_rating) / 400))


def k_factor(matches_played: int, settings: SystemSettings) -> float:
    if matches_played < settings.matches_for_established:
        return settings.provisional_k_factor
    return settings.established_k_factor


def compute_rating_change(
    winner_rating: float, loser_rating: float, actual_score: float, k: float
) -> int:
    """Modified Elo: the actual score is the winner's share of games."""

    return round_half_up(k * (actual_score - expected_score(winner_rating, loser_rating)))


def rating_status(matches_played: int, settings: SystemSettings) -> str:
    if matches_played >= settings.matches_for_established:
        return ESTABLISHED
    return PROVISIONAL


def crossed_milestones(
    previous: float, new: float, milestones: Sequence[int] = RATING_MILESTONES
) -> list[int]:
    return [m for m in milestones if previous < m <= new]


def compute_new_ratings(
    sets: Sequence[OrientedSet],
    winner_rating: float,
    loser_rating: float,
    winner_matches_played: int,
    settings: SystemSettings,
) -> RatingUpdate:
    actual = game_percentage(sets)
    k = k_factor(winner_matches_played, settings)
    change = compute_rating_change(winner_rating, loser_rating, actual, k)
    lo, hi = settings.rating_scale_min, settings.rating_scale_max
    return RatingUpdate(
        winner_new_rating=clamp(winner_rating + change, lo, hi),
        loser_new_rating=clamp(loser_rating - change, lo, hi),
        rating_change=change,
    )


async def read_settings(store: PersistencePort, match_id: str) -> SystemSettings:
    try:
        return await store.get_system_settings()
    except Exception as exc:
        logger.error("Could not read rating settings for match %s: %s", match_id, exc)
        raise DependencyReadError(f"could not read rating settings: {exc}") from exc


def _achievements(
    winner_id: str,
    winner_matches_played: int,
    previous_rating: float,
    new_rating: float,
    now: datetime,
) -> list[dict]:
    rows = []
    if winner_matches_played == 0:
        rows.append(
            {
                "player_id": winner_id,
                "achievement_type": "first_win",
                "achieved_at": now,
                "description": "Won first match!",
            }
        )
    for milestone in crossed_milestones(previous_rating, new_rating):
        rows.append(
            {
                "player_id": winner_id,
                "achievement_type": "rating_milestone",
                "achieved_at": now,
                "description": f"Reached {milestone} rating!",
                "data": {"milestone": milestone},
            }
        )
    return rows


async def update_ratings(
    store: PersistencePort,
    payload: MatchCompletionPayload,
    settings: SystemSettings | None = None,
    *,
    now: datetime | None = None,
) -> RatingUpdate:
    """Apply the result of a completed match to both players' ratings.

    Reads current ratings fresh on every call, so a retry does not reuse stale
    values, but nothing prevents the same match being applied twice. Writes
    run in order (winner profile, loser profile, ranking history,
    achievements) and stop at the first failure; committed steps are kept.
    """

    match_id = payload.match_id
    if payload.winner_id == payload.loser_id:
        raise ValidationError("winner and loser must be different players")

    actual = game_percentage(payload.sets)
    if settings is None:
        settings = await read_settings(store, match_id)

    try:
        rows = await store.get_profile_ratings([payload.winner_id, payload.loser_id])
    except Exception as exc:
        logger.error("Could not read ratings for match %s: %s", match_id, exc)
        raise DependencyReadError(f"could not read player ratings: {exc}") from exc
    by_id = {r.id: r for r in rows}
    missing = [pid for pid in (payload.winner_id, payload.loser_id) if pid not in by_id]
    if missing:
        logger.error("Match %s references unknown profile(s) %s", match_id, missing)
        raise DependencyReadError(f"no rating record for profile(s): {', '.join(missing)}")

    winner, loser = by_id[payload.winner_id], by_id[payload.loser_id]
    winner_rating = (
        winner.current_rating if winner.current_rating is not None else settings.initial_rating
    )
    loser_rating = (
        loser.current_rating if loser.current_rating is not None else settings.initial_rating
    )
    winner_matches = winner.matches_played or 0

    result = compute_new_ratings(
        payload.sets, winner_rating, loser_rating, winner_matches, settings
    )
    change = result.rating_change
    logger.info(
        "Match %s: K=%s expected=%.3f actual=%.3f change=%+d (%s -> %s, %s -> %s)",
        match_id,
        k_factor(winner_matches, settings),
        expected_score(winner_rating, loser_rating),
        actual,
        change,
        winner_rating,
        result.winner_new_rating,
        loser_rating,
        result.loser_new_rating,
    )

    now = now or utcnow()
    # Both players get the winner's count + 1, as the rating tables always have.
    played = winner_matches + 1
    status = rating_status(played, settings)

    def _profile_fields(rating: float) -> dict:
        return {
            "current_rating": rating,
            "matches_played": played,
            "rating_status": status,
            "updated_at": now,
        }

    history = [
        {
            "profile_id": payload.winner_id,
            "ranking_type": RANKING_TYPE,
            "points": result.winner_new_rating,
            "points_change": change,
            "calculation_date": now,
        },
        {
            "profile_id": payload.loser_id,
            "ranking_type": RANKING_TYPE,
            "points": result.loser_new_rating,
            "points_change": -change,
            "calculation_date": now,
        },
    ]
    achievements = _achievements(
        payload.winner_id, winner_matches, winner_rating, result.winner_new_rating, now
    )

    steps = [
        Step(
            "winner_profile",
            lambda: store.update_profile(
                payload.winner_id, _profile_fields(result.winner_new_rating)
            ),
        ),
        Step(
            "loser_profile",
            lambda: store.update_profile(
                payload.loser_id, _profile_fields(result.loser_new_rating)
            ),
        ),
        Step("ranking_history", lambda: store.insert_rows("ranking_history", history)),
    ]
    if achievements:
        steps.append(
            Step(
                "achievements",
                lambda: store.insert_rows("player_achievement", achievements),
            )
        )
    results = await run_steps(steps, context=f"match {match_id}")
    raise_for_failures(results, f"rating update for match {match_id}")
    return result
