from fastapi import APIRouter

from app.api.v1.endpoints import admin, audits, health, rulesets

router = APIRouter(prefix="/api/v1")

router.include_router(rulesets.router)
router.include_router(audits.router)
router.include_router(admin.router)
router.include_router(health.router)
