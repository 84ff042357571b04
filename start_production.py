#!/usr/bin/env python3
"""
Doodleboard production startup script.

Runs a single uvicorn worker: the live update hub keeps its connection
registry in process memory, so extra workers would each see only their own
subscribers.
"""

import os

import uvicorn

from doodleboard.config import settings


def start_production_server():
    port = int(os.getenv("PORT", "3000"))
    uvicorn.run(
        "doodleboard.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        workers=1,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=True,
        timeout_graceful_shutdown=10,
    )


if __name__ == "__main__":
    start_production_server()
