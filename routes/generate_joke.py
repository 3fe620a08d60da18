from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from agents.base_agent import ScriptParseError
from agents.image_generator_agent import ImageGeneratorAgent
from agents.joke_writer_agent import JokeWriterAgent
from agents.narration_agent import NarrationAgent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["generation"])


async def _read_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@router.post("/generate-joke")
async def generate_joke(request: Request):
    body = await _read_body(request)
    topic = body.get("topic")
    if not isinstance(topic, str) or not topic.strip():
        return _error(400, "Topic required")

    try:
        return await run_in_threadpool(JokeWriterAgent().generate, {"topic": topic.strip()})
    except ScriptParseError as exc:
        logger.error("Joke generation returned unparseable JSON: %s", exc)
        return _error(500, str(exc), raw=exc.raw)
    except Exception as exc:
        logger.exception("Joke generation failed")
        return _error(500, str(exc) or "Failed to generate joke")


@router.post("/generate-images")
async def generate_images(request: Request):
    body = await _read_body(request)
    scenes = body.get("scenes")
    if not isinstance(scenes, list):
        return _error(400, "Scenes array required")

    try:
        return await run_in_threadpool(ImageGeneratorAgent().generate, {"scenes": scenes})
    except Exception as exc:
        logger.exception("Image generation failed")
        return _error(500, str(exc) or "Failed to generate images")


@router.post("/generate-audio")
async def generate_audio(request: Request):
    body = await _read_body(request)
    scenes = body.get("scenes")
    if not isinstance(scenes, list):
        return _error(400, "Scenes array required")

    try:
        return await run_in_threadpool(NarrationAgent().generate, {"scenes": scenes})
    except Exception as exc:
        logger.exception("Audio generation failed")
        return _error(500, str(exc) or "Failed to generate audio")
