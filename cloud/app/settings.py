from __future__ import annotations
import os

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ["REDIS_URL"]
QUEUE_NAME = os.environ.get("QUEUE_NAME", "relayci:events")
EVENT_TTL_SECONDS = int(os.environ.get("EVENT_TTL_SECONDS", "86400"))
