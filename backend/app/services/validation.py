from typing import Any, Dict, List, Optional

class ValidationError(Exception):
    """Raised when submitted set scores or completion data are invalid."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


def validate_set_scores(
    sets: List[Dict[str, Any]],
    *,
    max_sets: Optional[int] = 3,
    allow_ties: bool = False,
    max_games_per_side: Optional[int] = 7,
) -> None:
    """Validate a list of set score dictionaries.

    Rules:
    - At least one set is required
    - Number of sets must be <= ``max_sets`` (if provided)
    - Each set must be an object ``{A, B}``
    - ``A`` and ``B`` must be integers >= 0 (booleans are rejected)
    - Ties are not allowed (``A`` != ``B``) unless ``allow_ties`` is ``True``
    """

    if not isinstance(sets, list) or len(sets) == 0:
        raise ValidationError("At least one set is required.")
    if max_sets is not None and len(sets) > max_sets:
        raise ValidationError(f"Too many sets. Max allowed is {max_sets}.")

    for i, s in enumerate(sets, start=1):
        if not isinstance(s, dict):
            raise ValidationError(f"Set #{i} must be an object with fields A and B.")
        if "A" not in s or "B" not in s:
            raise ValidationError(f"Set #{i} must include both A and B.")

        vA, vB = s["A"], s["B"]

        # Reject booleans explicitly (bool is a subclass of int in Python)
        if isinstance(vA, bool) or isinstance(vB, bool):
            raise ValidationError(f"Set #{i} scores must be integers (not booleans).")

        try:
            a = int(vA)
            b = int(vB)
        except (TypeError, ValueError):
            raise ValidationError(f"Set #{i} scores must be integers.")

        if a < 0 or b < 0:
            raise ValidationError(f"Set #{i} scores must be >= 0.")
        if not allow_ties and a == b:
            raise ValidationError(f"Set #{i} cannot be a tie.")
        if max_games_per_side is not None and (
            a > max_games_per_side or b > max_games_per_side
        ):
            raise ValidationError(
                f"Set #{i} scores must be <= {max_games_per_side}."
            )

    return None


def validate_completion_ids(match_id: str, event_id: str, winner_id: str, loser_id: str) -> None:
    for label, value in (
        ("matchId", match_id),
        ("eventId", event_id),
        ("winnerId", winner_id),
        ("loserId", loser_id),
    ):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{label} is required.")
    if winner_id == loser_id:
        raise ValidationError("winnerId and loserId must be different players.")
