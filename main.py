"""
MedRide Driver Client
=====================
Entry point. Run with: python main.py <phone>

Signs in as a driver, goes online and keeps searching for rides until
interrupted.
"""

import asyncio
import logging
import sys

from medride.app import driver_session
from medride.config import settings
from medride.domain.exceptions import MedrideError

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def run(phone: str) -> None:
    async with driver_session(settings) as app:
        try:
            await app.session.login(phone)
        except MedrideError as exc:
            logger.error("Sign-in failed: %s", exc)
            return
        await app.lifecycle.load_driver_data()
        if not app.lifecycle.online:
            await app.lifecycle.toggle_online()
        while True:
            await asyncio.sleep(settings.search_poll_interval_seconds)
            logger.info("Status: %s", app.lifecycle.snapshot())
            for row in app.lifecycle.ride_summaries():
                logger.info(
                    "  %s  %s -> %s  Rs %d  (%s)",
                    row["id"], row["pickup"], row["drop"], row["fare"], row["requested"],
                )


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: python main.py <phone>")
    try:
        asyncio.run(run(sys.argv[1]))
    except KeyboardInterrupt:
        pass
