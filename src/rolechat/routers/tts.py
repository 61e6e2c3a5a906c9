"""Speech synthesis routes: create an audio file, fetch it, delete it."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse

from ..schemas.tts import TTSRequest, TTSResponse
from ..services.audio_store import format_to_content_type
from ..services.speech import SpeechService, SpeechSynthesisError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tts", tags=["tts"])


def get_speech_service(request: Request) -> SpeechService:
    service = getattr(request.app.state, "speech_service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Speech service unavailable")
    return service


@router.post("", response_model=TTSResponse)
async def synthesize(
    payload: TTSRequest,
    service: SpeechService = Depends(get_speech_service),
) -> TTSResponse | JSONResponse:
    if not payload.message.strip():
        return JSONResponse(status_code=400, content={"error": "text is empty"})

    try:
        audio = await service.synthesize_to_file(
            payload.message,
            voice=payload.voice,
            speed=payload.speed,
            pitch=payload.pitch,
            style=payload.style,
            fmt=payload.format,
        )
    except SpeechSynthesisError as exc:
        logger.error("TTS failed (%s): %s", exc.status_code, exc.detail)
        return JSONResponse(status_code=500, content={"error": exc.detail})

    return TTSResponse(file_name=audio.file_name)


@router.get("/audio/{file_name}")
async def read_audio(
    file_name: str,
    service: SpeechService = Depends(get_speech_service),
) -> FileResponse:
    if not service.store.exists(file_name):
        raise HTTPException(status_code=404, detail="Audio file not found")
    path = service.store.path_for(file_name)
    return FileResponse(path, media_type=format_to_content_type(path.suffix.lstrip(".")))


@router.delete("/audio/{file_name}")
async def delete_audio(
    file_name: str,
    service: SpeechService = Depends(get_speech_service),
) -> dict[str, str]:
    if not service.store.delete(file_name):
        raise HTTPException(status_code=404, detail="File not found")
    return {"message": "Deleted"}


__all__ = ["router", "get_speech_service"]
