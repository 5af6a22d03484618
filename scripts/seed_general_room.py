import argparse
import asyncio
import sys
from pathlib import Path

# Add the project root directory to the Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.append(str(project_root))

from roomchat.core.log_config import logger, setup_logging
from roomchat.database.postgres import async_session, engine, initialize_db
from roomchat.services.room_service import RoomService


async def check():
    """Report the general room without changing anything."""
    async with async_session() as session:
        room = await RoomService(session).get_general_room()
        if room is None:
            logger.info("General room not found in the database.")
            return 1
        logger.info(f"General room found: '{room.name}' ({room.id}), {len(room.members)}/{room.max_members} members")
        return 0


async def seed():
    await initialize_db()
    async with async_session() as session:
        room = await RoomService(session).ensure_general_room()
        logger.info(f"General room '{room.name}' ready with {len(room.members)} members")
    return 0


async def main(check_only: bool) -> int:
    try:
        return await (check() if check_only else seed())
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the general room and enroll every user in it.")
    parser.add_argument("--check", action="store_true", help="only report whether the general room exists")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(main(args.check)))
