"""Live tennis scoring engine.
Tracks points → games → sets for a best-of-three singles match, together with
serve possession, per-side shot statistics, the match timer and a short
action log. Sets are decided at six games with a two game margin or at 7-6;
tiebreak points are not modelled separately."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Sequence

from ..utils.numbers import round_half_up

SIDES = ("A", "B")
POINT_KINDS = ("REGULAR", "WINNER", "ERROR")
EVENT_TYPES = ("POINT", "ACE", "TOGGLE_SERVE", "TICK", "PAUSE", "RESUME")
POINT_NAMES = ("0", "15", "30", "40")

GAMES_TO_WIN_SET = 6
SETS_TO_WIN_MATCH = 2
LOG_LIMIT = 20

_COUNTERS = ("points", "games", "sets", "aces", "winners", "errors", "pointsWon")


class ScoringError(ValueError):
    """Raised when an input is rejected; the state is left untouched."""


@dataclass(frozen=True)
class OrientedSet:
    """Games of one set seen from the match winner's side."""

    team_a: int
    team_b: int
    tiebreak_a: int | None = None
    tiebreak_b: int | None = None

    def as_dict(self) -> dict:
        data: dict = {"teamA": self.team_a, "teamB": self.team_b}
        if self.tiebreak_a is not None:
            data["tiebreakA"] = self.tiebreak_a
        if self.tiebreak_b is not None:
            data["tiebreakB"] = self.tiebreak_b
        return data


@dataclass(frozen=True)
class MatchCompletionPayload:
    match_id: str
    event_id: str
    winner_id: str
    loser_id: str
    sets: tuple[OrientedSet, ...]

    def as_dict(self) -> dict:
        return {
            "matchId": self.match_id,
            "eventId": self.event_id,
            "winnerId": self.winner_id,
            "loserId": self.loser_id,
            "scoreSummary": {"sets": [s.as_dict() for s in self.sets]},
        }


def init_state(config: Dict) -> Dict:
    """Initialise the scoreboard state."""
    names = config.get("names") or {}
    server = config.get("server", "A")
    if server not in SIDES:
        raise ScoringError("server must be 'A' or 'B'")
    state: Dict = {
        "config": {
            "names": {
                "A": names.get("A") or "Player A",
                "B": names.get("B") or "Player B",
            },
            "server": server,
        },
        "serving": server,
        "elapsed": 0,
        "running": True,
        "setHistory": [],
        "log": [],
        "complete": False,
        "winner": None,
        "ended": False,
    }
    for counter in _COUNTERS:
        state[counter] = {"A": 0, "B": 0}
    return state


def _other(side: str) -> str:
    return "B" if side == "A" else "A"


def _name(state: Dict, side: str) -> str:
    return state["config"]["names"][side]


def _log(state: Dict, action: str) -> None:
    entry = {"action": action, "timestamp": state["elapsed"]}
    state["log"] = [entry, *state["log"]][:LOG_LIMIT]


def _score_point(state: Dict, side: str, *, ace: bool = False) -> bool:
    """Award a point to ``side`` and resolve game, set and match wins.

    This is the only place the score advances; regular points, winners,
    errors (on behalf of the opponent) and aces all come through here.
    Returns ``True`` when the point decided a game.
    """
    opp = _other(side)
    if ace:
        state["aces"][side] += 1
    state["points"][side] += 1
    state["pointsWon"][side] += 1

    ps, po = state["points"][side], state["points"][opp]
    if not (ps >= 4 and ps - po >= 2):
        return False

    state["games"][side] += 1
    state["points"]["A"] = state["points"]["B"] = 0
    state["serving"] = _other(state["serving"])
    _log(state, f"{_name(state, side)} won the game")

    gs, go = state["games"][side], state["games"][opp]
    tiebreak_set = gs == GAMES_TO_WIN_SET + 1 and go == GAMES_TO_WIN_SET
    if not ((gs >= GAMES_TO_WIN_SET and gs - go >= 2) or tiebreak_set):
        return True

    state["setHistory"].append(
        {"A": state["games"]["A"], "B": state["games"]["B"]}
    )
    state["sets"][side] += 1
    state["games"]["A"] = state["games"]["B"] = 0
    _log(state, f"{_name(state, side)} won the set")

    if state["sets"][side] >= SETS_TO_WIN_MATCH:
        state["complete"] = True
        state["winner"] = side
        state["running"] = False
        _log(state, f"{_name(state, side)} won the match!")
    return True


def _check_side(event: Dict) -> str:
    side = event.get("by")
    if side not in SIDES:
        raise ScoringError("invalid tennis event")
    return side


def apply(event: Dict, state: Dict) -> Dict:
    etype = event.get("type")
    if etype not in EVENT_TYPES:
        raise ScoringError("invalid tennis event")
    side = _check_side(event) if etype in ("POINT", "ACE") else None
    kind = (event.get("kind") or "REGULAR").upper()
    if etype == "POINT" and kind not in POINT_KINDS:
        raise ScoringError(f"unknown point kind {kind!r}")
    seconds = event.get("seconds", 1)
    if etype == "TICK" and (
        isinstance(seconds, bool) or not isinstance(seconds, int) or seconds < 0
    ):
        raise ScoringError("tick seconds must be a non-negative integer")

    # Nothing moves once the match is decided.
    if state["complete"]:
        return state

    if etype == "ACE":
        if side != state["serving"]:
            raise ScoringError(
                f"{_name(state, side)} is not serving and cannot hit an ace"
            )
        if not _score_point(state, side, ace=True):
            _log(state, f"{_name(state, side)} served an ace")
    elif etype == "POINT":
        if kind == "ERROR":
            state["errors"][side] += 1
            _log(state, f"{_name(state, side)} made an error")
            _score_point(state, _other(side))
        else:
            if kind == "WINNER":
                state["winners"][side] += 1
            if not _score_point(state, side):
                verb = "hit a winner" if kind == "WINNER" else "scored a point"
                _log(state, f"{_name(state, side)} {verb}")
    elif etype == "TOGGLE_SERVE":
        state["serving"] = _other(state["serving"])
    elif etype == "TICK":
        if state["running"]:
            state["elapsed"] += seconds
    elif etype == "PAUSE":
        state["running"] = False
    elif etype == "RESUME":
        state["running"] = True
    return state


def replay(events: Iterable[Dict], config: Dict | None = None) -> Dict:
    """Rebuild a state from an ordered event log."""
    state = init_state(config or {})
    for ev in events:
        state = apply(ev, state)
    return state


def display_points(state: Dict) -> Dict[str, str]:
    a, b = state["points"]["A"], state["points"]["B"]
    if a >= 3 and b >= 3:
        if a == b:
            return {"A": "Deuce", "B": "Deuce"}
        leader = "A" if a > b else "B"
        return {leader: "Ad", _other(leader): POINT_NAMES[3]}
    return {"A": POINT_NAMES[min(a, 3)], "B": POINT_NAMES[min(b, 3)]}


def win_probability(state: Dict) -> Dict[str, int]:
    """Share of the current game's points, for display only."""
    a, b = state["points"]["A"], state["points"]["B"]
    total = a + b
    if total == 0:
        return {"A": 50, "B": 50}
    return {
        "A": round_half_up(a / total * 100),
        "B": round_half_up(b / total * 100),
    }


def format_elapsed(seconds: int) -> str:
    hrs, rem = divmod(max(seconds, 0), 3600)
    mins, secs = divmod(rem, 60)
    return f"{hrs:02d}:{mins:02d}:{secs:02d}"


def statistics(state: Dict) -> Dict[str, Dict[str, int]]:
    return {
        side: {
            "aces": state["aces"][side],
            "winners": state["winners"][side],
            "errors": state["errors"][side],
            "pointsWon": state["pointsWon"][side],
        }
        for side in SIDES
    }


def summary(state: Dict) -> Dict:
    return {
        "points": dict(state["points"]),
        "games": dict(state["games"]),
        "sets": dict(state["sets"]),
        "display": display_points(state),
        "winProbability": win_probability(state),
        "serving": state["serving"],
        "elapsed": state["elapsed"],
        "clock": format_elapsed(state["elapsed"]),
        "running": state["running"],
        "setHistory": [dict(s) for s in state["setHistory"]],
        "statistics": statistics(state),
        "log": [dict(e) for e in state["log"]],
        "complete": state["complete"],
        "winner": state["winner"],
        "config": state["config"],
    }


def reorient(
    set_history: Sequence[Dict[str, int]], winning_side: str
) -> tuple[OrientedSet, ...]:
    """Turn ``{A, B}`` set scores into winner/loser oriented sets."""
    if winning_side not in SIDES:
        raise ScoringError("winning side must be 'A' or 'B'")
    losing_side = _other(winning_side)
    return tuple(
        OrientedSet(team_a=int(s[winning_side]), team_b=int(s[losing_side]))
        for s in set_history
    )


def end_match(
    state: Dict,
    *,
    match_id: str,
    event_id: str,
    player_ids: Dict[str, str],
) -> MatchCompletionPayload:
    """Freeze a finished match and build its completion payload.

    Raises ``ScoringError`` without touching the state unless one side has
    won two sets.
    """
    sets = state["sets"]
    if max(sets["A"], sets["B"]) < SETS_TO_WIN_MATCH or sets["A"] + sets["B"] < 2:
        raise ScoringError(
            f"match is not complete (sets {sets['A']}-{sets['B']})"
        )
    if set(player_ids) != set(SIDES) or not all(player_ids.values()):
        raise ScoringError("both player ids are required to end the match")

    winner = "A" if sets["A"] > sets["B"] else "B"
    loser = _other(winner)
    state["complete"] = True
    state["winner"] = winner
    state["running"] = False
    state["ended"] = True
    return MatchCompletionPayload(
        match_id=match_id,
        event_id=event_id,
        winner_id=player_ids[winner],
        loser_id=player_ids[loser],
        sets=reorient(state["setHistory"], winner),
    )


def _set_is_valid(win_games: int, lose_games: int) -> bool:
    if win_games == GAMES_TO_WIN_SET:
        return 0 <= lose_games <= GAMES_TO_WIN_SET - 2
    if win_games == GAMES_TO_WIN_SET + 1:
        return lose_games in (GAMES_TO_WIN_SET - 1, GAMES_TO_WIN_SET)
    return False


def record_sets(set_scores, state=None):
    """Generate point events to reach the provided set scores."""
    state = state or init_state({})
    if any(state["points"].values()) or any(state["games"].values()):
        raise ScoringError("set scores can only be recorded between sets")
    events = []

    def _game(side):
        nonlocal state
        for _ in range(4):
            ev = {"type": "POINT", "by": side, "kind": "REGULAR"}
            events.append(ev)
            state = apply(ev, state)

    for ga, gb in set_scores:
        if ga == gb:
            raise ScoringError("sets cannot be tied")
        if state["complete"]:
            raise ScoringError("match already complete")
        winner = "A" if ga > gb else "B"
        loser = _other(winner)
        win_games = max(ga, gb)
        lose_games = min(ga, gb)
        if not _set_is_valid(win_games, lose_games):
            raise ScoringError(f"{ga}-{gb} is not a valid set score")

        # Alternate games so neither side closes the set early.
        for _ in range(lose_games):
            _game(loser)
            _game(winner)
        for _ in range(win_games - lose_games):
            _game(winner)

    return events, state
