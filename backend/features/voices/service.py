"""
backend/features/voices/service.py

Voice catalog: the neural voices a user may pick for narration.

The catalog is seeded (see backend/scripts/seed_voices.py) and read-only at
runtime. Listing goes through the response cache under "voices:all";
reseeding clears every "voices:*" key.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import delete, insert, select

from backend.core.config import settings
from backend.core.database import storage_session, voices as voices_table
from backend.core.logging import log_event
from backend.core.metrics import voice_catalog_size
from backend.features.cache.service import ResponseCache
from backend.models.voice import Voice


logger = logging.getLogger("vidify")

VOICES_CACHE_KEY = "voices:all"
VOICES_CACHE_PATTERN = "voices:*"

# (key, language, country, gender, locale, voice_name)
DEFAULT_VOICES: Tuple[Tuple[str, str, str, str, str, str], ...] = (
    ("en-US-JennyNeural", "English", "United States", "Female", "en-US", "JennyNeural"),
    ("en-US-GuyNeural", "English", "United States", "Male", "en-US", "GuyNeural"),
    ("en-GB-SoniaNeural", "English", "United Kingdom", "Female", "en-GB", "SoniaNeural"),
    ("en-GB-RyanNeural", "English", "United Kingdom", "Male", "en-GB", "RyanNeural"),
    ("en-AU-NatashaNeural", "English", "Australia", "Female", "en-AU", "NatashaNeural"),
    ("en-AU-WilliamNeural", "English", "Australia", "Male", "en-AU", "WilliamNeural"),
    ("en-IN-NeerjaNeural", "English", "India", "Female", "en-IN", "NeerjaNeural"),
    ("en-IN-PrabhatNeural", "English", "India", "Male", "en-IN", "PrabhatNeural"),
    ("zh-CN-XiaoxiaoNeural", "Chinese", "China", "Female", "zh-CN", "XiaoxiaoNeural"),
    ("zh-CN-YunxiNeural", "Chinese", "China", "Male", "zh-CN", "YunxiNeural"),
    ("es-ES-ElviraNeural", "Spanish", "Spain", "Female", "es-ES", "ElviraNeural"),
    ("es-ES-AlvaroNeural", "Spanish", "Spain", "Male", "es-ES", "AlvaroNeural"),
    ("es-MX-DaliaNeural", "Spanish", "Mexico", "Female", "es-MX", "DaliaNeural"),
    ("es-MX-JorgeNeural", "Spanish", "Mexico", "Male", "es-MX", "JorgeNeural"),
    ("hi-IN-SwaraNeural", "Hindi", "India", "Female", "hi-IN", "SwaraNeural"),
    ("hi-IN-MadhurNeural", "Hindi", "India", "Male", "hi-IN", "MadhurNeural"),
    ("ar-SA-ZariyahNeural", "Arabic", "Saudi Arabia", "Female", "ar-SA", "ZariyahNeural"),
    ("ar-SA-HamedNeural", "Arabic", "Saudi Arabia", "Male", "ar-SA", "HamedNeural"),
    ("pt-BR-FranciscaNeural", "Portuguese", "Brazil", "Female", "pt-BR", "FranciscaNeural"),
    ("pt-BR-AntonioNeural", "Portuguese", "Brazil", "Male", "pt-BR", "AntonioNeural"),
    ("ru-RU-SvetlanaNeural", "Russian", "Russia", "Female", "ru-RU", "SvetlanaNeural"),
    ("ru-RU-DmitryNeural", "Russian", "Russia", "Male", "ru-RU", "DmitryNeural"),
    ("ja-JP-NanamiNeural", "Japanese", "Japan", "Female", "ja-JP", "NanamiNeural"),
    ("ja-JP-KeitaNeural", "Japanese", "Japan", "Male", "ja-JP", "KeitaNeural"),
    ("de-DE-KatjaNeural", "German", "Germany", "Female", "de-DE", "KatjaNeural"),
    ("de-DE-ConradNeural", "German", "Germany", "Male", "de-DE", "ConradNeural"),
    ("fr-FR-DeniseNeural", "French", "France", "Female", "fr-FR", "DeniseNeural"),
    ("fr-FR-HenriNeural", "French", "France", "Male", "fr-FR", "HenriNeural"),
    ("fr-CA-SylvieNeural", "French", "Canada", "Female", "fr-CA", "SylvieNeural"),
    ("fr-CA-JeanNeural", "French", "Canada", "Male", "fr-CA", "JeanNeural"),
    ("ko-KR-SunHiNeural", "Korean", "Korea", "Female", "ko-KR", "SunHiNeural"),
    ("ko-KR-InJoonNeural", "Korean", "Korea", "Male", "ko-KR", "InJoonNeural"),
    ("it-IT-ElsaNeural", "Italian", "Italy", "Female", "it-IT", "ElsaNeural"),
    ("it-IT-DiegoNeural", "Italian", "Italy", "Male", "it-IT", "DiegoNeural"),
    ("tr-TR-EmelNeural", "Turkish", "Türkiye", "Female", "tr-TR", "EmelNeural"),
    ("tr-TR-AhmetNeural", "Turkish", "Türkiye", "Male", "tr-TR", "AhmetNeural"),
    ("pl-PL-AgnieszkaNeural", "Polish", "Poland", "Female", "pl-PL", "AgnieszkaNeural"),
    ("pl-PL-MarekNeural", "Polish", "Poland", "Male", "pl-PL", "MarekNeural"),
    ("vi-VN-HoaiMyNeural", "Vietnamese", "Vietnam", "Female", "vi-VN", "HoaiMyNeural"),
    ("vi-VN-NamMinhNeural", "Vietnamese", "Vietnam", "Male", "vi-VN", "NamMinhNeural"),
    ("id-ID-GadisNeural", "Indonesian", "Indonesia", "Female", "id-ID", "GadisNeural"),
    ("id-ID-ArdiNeural", "Indonesian", "Indonesia", "Male", "id-ID", "ArdiNeural"),
    ("nl-NL-FennaNeural", "Dutch", "Netherlands", "Female", "nl-NL", "FennaNeural"),
    ("nl-NL-MaartenNeural", "Dutch", "Netherlands", "Male", "nl-NL", "MaartenNeural"),
    ("sv-SE-SofieNeural", "Swedish", "Sweden", "Female", "sv-SE", "SofieNeural"),
    ("sv-SE-MattiasNeural", "Swedish", "Sweden", "Male", "sv-SE", "MattiasNeural"),
)


def default_voices() -> List[Voice]:
    return [
        Voice(key=k, language=lang, country=country, gender=gender, locale=locale, voice_name=name)
        for k, lang, country, gender, locale, name in DEFAULT_VOICES
    ]


def _row_to_voice(row) -> Voice:
    return Voice(
        key=row.key,
        language=row.language,
        country=row.country,
        gender=row.gender,
        locale=row.locale,
        voice_name=row.voice_name,
    )


def list_voices(locale: Optional[str] = None) -> List[Voice]:
    stmt = select(voices_table).order_by(voices_table.c.locale, voices_table.c.key)
    if locale:
        stmt = stmt.where(voices_table.c.locale == locale)
    with storage_session("load voices") as session:
        return [_row_to_voice(row) for row in session.execute(stmt).fetchall()]


def get_voice(key: str) -> Optional[Voice]:
    with storage_session("load voice") as session:
        row = session.execute(select(voices_table).where(voices_table.c.key == key)).first()
        return _row_to_voice(row) if row else None


def voices_response(cache: Optional[ResponseCache] = None) -> Dict[str, Any]:
    """
    Body for GET /api/voices, read through the cache.

    An empty catalog is not an error and is not cached, so a later seed
    shows up immediately.
    """
    if cache is not None:
        cached = cache.get(VOICES_CACHE_KEY)
        if cached is not None:
            return cached

    catalog = list_voices()
    voice_catalog_size.set(len(catalog))
    if not catalog:
        return {"message": "No voices found", "voices": []}

    response = {"count": len(catalog), "voices": [v.to_public_dict() for v in catalog]}
    if cache is not None:
        cache.set(VOICES_CACHE_KEY, response, ttl_seconds=settings.VOICES_CACHE_TTL_SECONDS)
    return response


def seed_voices(entries: Optional[Iterable[Voice]] = None, cache: Optional[ResponseCache] = None) -> int:
    """Replace the catalog with `entries` (default: DEFAULT_VOICES). Returns the count."""
    catalog = list(entries) if entries is not None else default_voices()
    with storage_session("seed voices") as session:
        session.execute(delete(voices_table))
        if catalog:
            session.execute(
                insert(voices_table),
                [
                    {
                        "key": v.key,
                        "language": v.language,
                        "country": v.country,
                        "gender": v.gender,
                        "locale": v.locale,
                        "voice_name": v.voice_name,
                    }
                    for v in catalog
                ],
            )
    if cache is not None:
        cache.clear(VOICES_CACHE_PATTERN)
    voice_catalog_size.set(len(catalog))
    log_event("info", "voices.seeded", event_type="voices.seeded", extra={"count": len(catalog)})
    return len(catalog)
