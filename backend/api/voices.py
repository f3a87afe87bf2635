"""Voice catalog API: GET /api/voices."""
from fastapi import APIRouter, Depends

from backend.features.cache.service import ResponseCache, get_response_cache
from backend.features.voices.service import voices_response

router = APIRouter(prefix="/api/voices", tags=["voices"])


@router.get("")
def get_voices(cache: ResponseCache = Depends(get_response_cache)):
    return voices_response(cache)
