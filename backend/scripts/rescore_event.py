#!/usr/bin/env python3
"""Admin helper to rebuild an event's stored scoreboard from its score events."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.db import normalize_database_url
from app.models import Event, ScoreEvent
from app.scoring import tennis


async def _get_engine() -> AsyncEngine:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL environment variable is required")
    return create_async_engine(
        normalize_database_url(database_url), echo=False, pool_pre_ping=True
    )


async def _load_event(session: AsyncSession, event_id: str) -> Event:
    event = await session.get(Event, event_id)
    if event is None:
        raise RuntimeError(f"Event '{event_id}' not found")
    return event


def _score_line(details: Dict[str, Any] | None) -> Dict[str, Any]:
    details = details or {}
    return {
        "sets": details.get("sets"),
        "games": details.get("games"),
        "points": details.get("points"),
        "setHistory": details.get("setHistory"),
        "complete": details.get("complete"),
    }


async def main() -> None:
    parser = argparse.ArgumentParser(
        description=(
            "Replay the score events of a live match and store the resulting "
            "scoreboard on the event row."
        )
    )
    parser.add_argument("event_id", help="Identifier of the event to rescore")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the rebuilt scoreboard without writing it to the database.",
    )

    args = parser.parse_args()

    engine = await _get_engine()
    Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with Session() as session:
            event = await _load_event(session, args.event_id)
            rows = (
                await session.execute(
                    select(ScoreEvent)
                    .where(ScoreEvent.event_id == event.id)
                    .order_by(ScoreEvent.seq)
                )
            ).scalars().all()
            details = event.details or {}
            state = tennis.replay(
                (r.payload for r in rows),
                {
                    "names": (details.get("config") or {}).get("names") or {},
                    "server": details.get("server", "A"),
                },
            )
            rebuilt = {**details, **tennis.summary(state)}

            print("Stored:")
            print(json.dumps(_score_line(event.details), indent=2, sort_keys=True))
            print(f"Rebuilt from {len(rows)} event(s):")
            print(json.dumps(_score_line(rebuilt), indent=2, sort_keys=True))

            if _score_line(event.details) == _score_line(rebuilt):
                print("No changes detected; nothing to do.")
                return

            if args.dry_run:
                print("Dry run; no updates written.")
                return

            event.details = rebuilt
            await session.commit()
            print("Update applied.")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
