from fastapi import APIRouter
from .vehicles import router as vehicles_router


router = APIRouter()
router.include_router(vehicles_router)
