"""HTTP functions exposed under ``/functions/v1``."""

from fastapi import APIRouter

from .audio import router as audio_router
from .chat import router as chat_router
from .documents import router as documents_router
from .sources import router as sources_router

router = APIRouter(prefix="/functions/v1")
router.include_router(documents_router)
router.include_router(chat_router)
router.include_router(audio_router)
router.include_router(sources_router)

__all__ = ["router"]
