#!/usr/bin/env python3
"""CLI tool to generate transcript embeddings for meetings that lack them.

Also reports embedding coverage per room so inconsistent meetings
(embedding flag and stored rows disagreeing) can be spotted.

Usage:
    python scripts/generate_embeddings.py
    python scripts/generate_embeddings.py --room standup-alpha --room design-review
    python scripts/generate_embeddings.py --check-only
"""

import argparse
import asyncio
import sys

sys.path.insert(0, '.')

from dotenv import load_dotenv
load_dotenv()

from meeting_context.core.errors import RoomNotFound
from meeting_context.core.logging import get_logger
from meeting_context.services.context_service import create_context_service

logger = get_logger(__name__)


async def generate_embeddings(rooms=None, meetings_per_room: int = 100, check_only: bool = False):
    """Backfill embeddings, then print coverage for each room.

    Args:
        rooms: Room names to process (all rooms if None)
        meetings_per_room: Most recent meetings considered per room
        check_only: Only report coverage, do not generate
    """
    service = create_context_service()
    await service.initialize()

    try:
        print("=" * 70)
        print("EMBEDDING COVERAGE" if check_only else "GENERATING EMBEDDINGS")
        print("=" * 70)

        if not check_only:
            stats = await service.backfill_embeddings(rooms, meetings_per_room)
            print(f"Rooms processed:       {stats['rooms']}")
            print(f"Meetings embedded:     {stats['meetings']}")
            print(f"Transcripts embedded:  {stats['transcripts']}")
            print(f"Failures:              {stats['failed']}")
            print()

        room_names = rooms or [room.room_name for room in await service.store.list_rooms()]
        for room_name in room_names:
            try:
                coverage = await service.embedding_coverage(room_name)
            except RoomNotFound:
                print(f"  {room_name}: room not found")
                continue

            print(
                f"  {room_name}: {coverage.meetings_with_embeddings}/{coverage.total_meetings} meetings, "
                f"{coverage.coverage:.0%} of transcripts embedded"
            )
            for meeting_id in coverage.inconsistent_meetings:
                print(f"    inconsistent: {meeting_id}")
    finally:
        await service.close()


def main():
    parser = argparse.ArgumentParser(description="Generate transcript embeddings")
    parser.add_argument(
        "--room",
        action="append",
        dest="rooms",
        help="Room name to process (repeatable; default: all rooms)",
    )
    parser.add_argument(
        "--meetings-per-room",
        type=int,
        default=100,
        help="Most recent meetings considered per room (default: 100)",
    )
    parser.add_argument(
        "--check-only",
        action="store_true",
        help="Only report embedding coverage",
    )
    args = parser.parse_args()

    asyncio.run(generate_embeddings(args.rooms, args.meetings_per_room, args.check_only))


if __name__ == "__main__":
    main()
