from fastapi import APIRouter
from .autentication import router as autentication_router
from .gestionusurios import router as gestionusurios_router


router = APIRouter()
router.include_router(autentication_router)
router.include_router(gestionusurios_router)
