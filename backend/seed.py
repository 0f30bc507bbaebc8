import asyncio
import os
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from app.config import DEFAULT_RATING_SETTINGS, RATING_SETTINGS_ID
from app.db import normalize_database_url
from app.models import Profile, SystemSetting

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")
DATABASE_URL = normalize_database_url(DATABASE_URL)

engine = create_async_engine(DATABASE_URL, echo=False, pool_pre_ping=True)
Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

async def main():
    async with Session() as s:
        if await s.get(SystemSetting, RATING_SETTINGS_ID) is None:
            s.add(SystemSetting(id=RATING_SETTINGS_ID, **DEFAULT_RATING_SETTINGS))
        await s.commit()

        # sample players
        existing_profiles = {
            x.id for x in (await s.execute(select(Profile))).scalars().all()
        }
        initial = DEFAULT_RATING_SETTINGS["initial_rating"]
        profiles = [
            Profile(id="demo-player", username="demo", full_name="Demo Player"),
            Profile(
                id="tennis-alex-ruiz",
                username="alexruiz",
                full_name="Alex Ruiz",
                current_rating=initial,
            ),
            Profile(
                id="tennis-bella-fernandez",
                username="bellaf",
                full_name="Bella Fernandez",
                current_rating=initial,
            ),
            Profile(
                id="tennis-carlos-mendez",
                username="cmendez",
                full_name="Carlos Mendez",
                current_rating=1450.0,
                matches_played=12,
                rating_status="Established",
            ),
        ]
        for p in profiles:
            if p.id not in existing_profiles:
                s.add(p)
        await s.commit()

if __name__ == "__main__":
    asyncio.run(main())
