from fastapi import APIRouter
import logging


def build_router() -> APIRouter:
    router = APIRouter()
    log = logging.getLogger("routers")

    from .ops import router as ops_router
    router.include_router(ops_router)
    log.info("Loaded router: ops")

    from .doodles import router as doodles_router
    router.include_router(doodles_router)
    log.info("Loaded router: doodles")

    from .live import router as live_router
    router.include_router(live_router)
    log.info("Loaded router: live")

    return router
