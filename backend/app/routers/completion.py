# backend/app/routers/completion.py
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import RatingUpdateError, http_problem
from ..persistence import SqlAlchemyStore
from ..rate_limit import completion_rate_limit, limiter
from ..schemas import MatchCompletionIn, RatingUpdateOut
from ..services import ValidationError, handle_match_completion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matches", tags=["completion"])


@router.post("/complete", response_model=RatingUpdateOut)
@limiter.limit(completion_rate_limit)
async def complete_match(
    request: Request,
    body: MatchCompletionIn,
    session: AsyncSession = Depends(get_session),
) -> RatingUpdateOut:
    """Record a finished match and return both players' new ratings."""
    try:
        result = await handle_match_completion(SqlAlchemyStore(session), body.to_payload())
    except ValidationError as e:
        raise http_problem(
            status_code=422,
            detail=str(e),
            code="match_validation_error",
        )
    except RatingUpdateError as exc:
        logger.warning("Completion of match %s failed: %s", body.matchId, exc.detail)
        raise http_problem(
            status_code=400,
            detail=exc.detail,
            code=exc.code,
        )
    return RatingUpdateOut(
        winnerNewRating=result.winner_new_rating,
        loserNewRating=result.loser_new_rating,
    )
