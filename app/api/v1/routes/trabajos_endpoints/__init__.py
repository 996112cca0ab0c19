from fastapi import APIRouter
from .trabajos import router as trabajos_router
from .evidencias import router as evidencias_router


router = APIRouter()
router.include_router(trabajos_router)
router.include_router(evidencias_router)
