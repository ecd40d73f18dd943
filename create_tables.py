import asyncio
import sys
import os

# Add current directory to path so imports work
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from lms.database import init_db, SessionLocal
from lms.seed import seed_demo_data

async def main(seed: bool):
    print("Initializing Database Tables...")
    await init_db()
    print("✅ Tables Created Successfully.")

    if seed:
        async with SessionLocal() as db:
            if await seed_demo_data(db):
                print("✅ Demo data seeded.")
            else:
                print("Database already has data, skipping seed.")

if __name__ == "__main__":
    asyncio.run(main(seed="--seed" in sys.argv[1:]))
