"""
Meetini Reminders — Entry Point.

  python main.py                     start the HTTP API (uvicorn)
  python main.py process-reminders   run one dispatch + cleanup batch and exit
"""

import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger("meetini")


def run_batch() -> int:
    """One cron-style batch: dispatch due reminders, then sweep old ones."""
    from meetini.adapters.http_gateway import HttpNotificationGateway
    from meetini.core.cleanup import cleanup_reminders
    from meetini.core.reminder_dispatcher import process_reminders
    from meetini.data.db import InvitationDB

    db = InvitationDB()
    gateway = HttpNotificationGateway.from_settings()
    dispatch = asyncio.run(process_reminders(db, gateway))
    cleanup = cleanup_reminders(db)
    logger.info("Batch finished: dispatch=%s cleanup=%s", dispatch.as_dict(), cleanup.as_dict())
    return 1 if cleanup.errors else 0


def serve() -> None:
    import uvicorn

    from meetini.api.server import create_app
    from meetini.config import settings

    uvicorn.run(create_app(), host="0.0.0.0", port=settings.APP_PORT)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "process-reminders":
        sys.exit(run_batch())
    serve()
