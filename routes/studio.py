from __future__ import annotations

import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, Response
from pydantic import ValidationError

from joke_video_service.capture import ExportError
from joke_video_service.job_manager import job_manager
from joke_video_service.scheduler import Scheduler
from joke_video_service.studio import PreviewStudio
from manager.agent_manager import AgentManager, PipelineError
from schemas.agent_io import JokeWriterInput, SceneMove, SceneUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["studio"])

STUDIOS: Dict[str, PreviewStudio] = {}  # in-memory, one per generation job
STUDIO_SCHEDULER: Optional[Scheduler] = None  # None -> the running event loop


def get_export_dir() -> Path:
    default = Path(__file__).resolve().parent.parent / "exports"
    return Path(os.getenv("JOKE_VIDEO_EXPORT_DIR", str(default)))


async def run_generation(job_id: str, topic: str) -> None:
    manager = AgentManager()

    def update_progress(step: str, message: str) -> None:
        job_manager.set_step(job_id, step, message)

    try:
        video = await run_in_threadpool(manager.run, topic, update_progress)
        studio = PreviewStudio(video, get_export_dir(), scheduler=STUDIO_SCHEDULER)
        await studio.load_assets()
    except PipelineError as exc:
        logger.error("Generation job %s failed during %s: %s", job_id, exc.stage, exc)
        job_manager.fail_job(job_id, str(exc), raw=exc.raw)
        return
    except Exception as exc:
        logger.exception("Generation job %s failed", job_id)
        job_manager.fail_job(job_id, str(exc))
        return

    if job_manager.complete_job(job_id) is None:
        # deleted while generating
        studio.close()
        return
    STUDIOS[job_id] = studio
    logger.info("Generation job %s ready: '%s'", job_id, studio.title)


def _get_studio(video_id: str) -> PreviewStudio:
    studio = STUDIOS.get(video_id)
    if studio is None:
        raise HTTPException(status_code=404, detail="Video not found or not ready yet")
    return studio


def _check_index(studio: PreviewStudio, index: int) -> None:
    if index < 0 or index >= len(studio.store):
        raise HTTPException(status_code=404, detail=f"Scene {index} does not exist")


@router.post("")
async def start_video(payload: JokeWriterInput, background_tasks: BackgroundTasks) -> Dict[str, str]:
    topic = payload.topic.strip()
    if not topic:
        raise HTTPException(status_code=400, detail="Topic required")
    job = job_manager.create_job(topic)
    background_tasks.add_task(run_generation, job.job_id, topic)
    return {"job_id": job.job_id}


@router.get("/{video_id}")
async def get_video(video_id: str) -> Dict[str, Any]:
    job = job_manager.get_job(video_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    studio = STUDIOS.get(video_id)
    return {**asdict(job), "studio": studio.snapshot() if studio else None}


@router.get("/{video_id}/frame.png")
async def get_frame(video_id: str, scene: int = Query(0), punchline: bool = Query(False)) -> Response:
    studio = _get_studio(video_id)
    _check_index(studio, scene)
    return Response(content=studio.frame_png(scene, punchline), media_type="image/png")


@router.patch("/{video_id}/scenes/{index}")
async def update_scene(video_id: str, index: int, payload: SceneUpdate) -> Dict[str, Any]:
    studio = _get_studio(video_id)
    _check_index(studio, index)
    try:
        for field, value in payload.model_dump(exclude_none=True).items():
            studio.store.update_scene(index, field, value)
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return studio.snapshot()


@router.post("/{video_id}/scenes/{index}/move")
async def move_scene(video_id: str, index: int, payload: SceneMove) -> Dict[str, Any]:
    studio = _get_studio(video_id)
    _check_index(studio, index)
    if payload.direction == "up":
        moved = studio.store.move_up(index)
    else:
        moved = studio.store.move_down(index)
    return {"moved": moved, **studio.snapshot()}


@router.post("/{video_id}/play")
async def play(video_id: str) -> Dict[str, Any]:
    studio = _get_studio(video_id)
    if studio.exporter.is_exporting:
        raise HTTPException(status_code=409, detail="Export in progress")
    studio.play()
    return asdict(studio.engine.state)


@router.post("/{video_id}/stop")
async def stop(video_id: str) -> Dict[str, Any]:
    studio = _get_studio(video_id)
    studio.stop()
    return asdict(studio.engine.state)


@router.post("/{video_id}/export", status_code=202)
async def export(video_id: str) -> Dict[str, Any]:
    studio = _get_studio(video_id)
    try:
        studio.start_export()
    except ExportError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"status": "preparing", "progress": "Preparing export..."}


@router.get("/{video_id}/download")
async def download(video_id: str) -> FileResponse:
    studio = _get_studio(video_id)
    path = studio.download_path
    if path is None or not path.exists():
        raise HTTPException(status_code=404, detail="No exported video yet")
    return FileResponse(str(path), media_type="video/webm", filename=path.name)


@router.delete("/{video_id}", status_code=204)
async def delete_video(video_id: str) -> Response:
    """Start over: drop the studio, its job and any exported file."""
    studio = STUDIOS.pop(video_id, None)
    job = job_manager.delete_job(video_id)
    if studio is None and job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if studio is not None:
        studio.close()
    return Response(status_code=204)
