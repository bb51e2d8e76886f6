from fastapi import APIRouter

from . import allocations, price_changes, pricing, purchases, session_pool, session_requests

router = APIRouter(prefix="/v1")
router.include_router(session_pool.router)
router.include_router(allocations.router)
router.include_router(session_requests.router)
router.include_router(pricing.router)
# scheduled changes write into the same pricing rows
router.include_router(price_changes.router)
router.include_router(purchases.router)
