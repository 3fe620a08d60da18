import asyncio
import io

import pytest
from PIL import Image

from conftest import make_image_base64
from joke_video_service.capture import AudioMixer, ExportError
from joke_video_service.studio import PreviewStudio
from schemas.joke_script import GeneratedVideo
from test_exporter import FakeEncoder


def _studio(video, scheduler, tmp_path):
    return PreviewStudio(
        video,
        tmp_path,
        scheduler=scheduler,
        surface_size=(54, 96),
        encoder=FakeEncoder(),
        mixer_factory=lambda track: AudioMixer.open(None),
    )


def test_studio_requires_joke(scheduler, tmp_path):
    with pytest.raises(ValueError):
        PreviewStudio(GeneratedVideo(), tmp_path, scheduler=scheduler)


def test_frame_png_renders_requested_scene(generated_video, scheduler, tmp_path):
    studio = _studio(generated_video, scheduler, tmp_path)
    png = studio.frame_png(2, True)

    image = Image.open(io.BytesIO(png))
    assert image.format == "PNG"
    assert image.size == (54, 96)
    with pytest.raises(IndexError):
        studio.frame_png(3, False)


def test_load_assets_and_snapshot(generated_video, scheduler, tmp_path):
    studio = _studio(generated_video, scheduler, tmp_path)
    assert asyncio.run(studio.load_assets()) == 2

    snapshot = studio.snapshot()
    assert snapshot["title"] == "Brew Haha"
    assert snapshot["images_loaded"] == [True, True, False]
    assert snapshot["has_audio"]
    assert snapshot["total_duration"] == 3
    assert snapshot["export_duration"] == pytest.approx(3.5)
    assert snapshot["playback"]["is_playing"] is False
    assert snapshot["export"]["status"] == "idle"
    assert "image_base64" not in snapshot["scenes"][0]


def test_scene_edits_reach_preview(generated_video, scheduler, tmp_path):
    studio = _studio(generated_video, scheduler, tmp_path)
    studio.store.update_scene(0, "setup", "Edited")
    studio.store.attach_images([None, None, make_image_base64((0, 0, 255))])

    snapshot = studio.snapshot()
    assert snapshot["scenes"][0]["setup"] == "Edited"
    assert snapshot["images_loaded"] == [False, False, True]


def test_play_and_stop(generated_video, scheduler, tmp_path):
    studio = _studio(generated_video, scheduler, tmp_path)
    studio.play()
    scheduler.advance(1.5)
    assert studio.engine.state.current_scene_index == 1
    assert studio.audio.is_playing

    studio.stop()
    assert not studio.engine.is_playing
    assert not studio.audio.is_playing


def test_export_through_studio(generated_video, scheduler, tmp_path):
    studio = _studio(generated_video, scheduler, tmp_path)

    async def scenario():
        task = studio.start_export()
        with pytest.raises(ExportError):
            studio.start_export()
        await asyncio.sleep(0)
        scheduler.advance(3.5)
        await task

    asyncio.run(scenario())

    snapshot = studio.snapshot()
    assert snapshot["export"]["status"] == "done"
    assert snapshot["export"]["filename"] == "dad-joke-brew-haha.webm"
    assert studio.download_path.exists()


def test_close_stops_playback_and_removes_export(generated_video, scheduler, tmp_path):
    studio = _studio(generated_video, scheduler, tmp_path)
    exported = tmp_path / "dad-joke-brew-haha.webm"
    exported.write_bytes(b"webm")
    studio.download_path = exported
    studio.play()
    scheduler.advance(1.5)

    studio.close()

    assert not studio.engine.is_playing
    assert not studio.audio.is_playing
    assert scheduler.pending == 0
    assert studio.download_path is None
    assert not exported.exists()


def test_close_abandons_running_export(generated_video, scheduler, tmp_path):
    studio = _studio(generated_video, scheduler, tmp_path)

    async def scenario():
        task = studio.start_export()
        await asyncio.sleep(0)
        scheduler.advance(1)
        studio.close()
        with pytest.raises(asyncio.CancelledError):
            await task
        return task

    task = asyncio.run(scenario())
    assert task.cancelled()
    assert studio.exporter.status == "failed"
    assert studio.download_path is None
