import pytest

from conftest import make_scenes
from joke_video_service.playback import AudioTrack, PlaybackEngine
from joke_video_service.scene_store import SceneStore


class RecordingOutput:
    def __init__(self, fail: bool = False) -> None:
        self.events = []
        self.fail = fail

    def start(self, track):
        if self.fail:
            raise RuntimeError("autoplay blocked")
        self.events.append("start")

    def stop(self, track):
        self.events.append("stop")


def _engine(scheduler, surface, store=None, audio=None):
    if store is None:
        store = SceneStore(make_scenes())
    engine = PlaybackEngine(
        surface,
        lambda: store.scenes,
        audio=audio,
        scheduler=scheduler,
        frame_interval=0.25,
    )
    return engine, store


def test_play_starts_at_first_scene(scheduler, small_surface):
    engine, _ = _engine(scheduler, small_surface)
    engine.play()

    state = engine.state
    assert state.is_playing
    assert state.current_scene_index == 0
    assert not state.punchline_revealed
    assert engine.tick_loop_active


def test_punchline_reveals_at_half_duration(scheduler, small_surface):
    engine, _ = _engine(scheduler, small_surface)
    engine.play()

    scheduler.advance(2.25)
    assert not engine.state.punchline_revealed
    scheduler.advance(0.25)
    assert engine.state.punchline_revealed
    assert engine.state.current_scene_index == 0


def test_advances_and_resets_scene_clock(scheduler, small_surface):
    engine, _ = _engine(scheduler, small_surface)
    engine.play()

    scheduler.advance(5)
    state = engine.state
    assert state.current_scene_index == 1
    assert state.scene_start_time == pytest.approx(5)
    assert not state.punchline_revealed

    scheduler.advance(5)
    assert engine.state.current_scene_index == 2


def test_natural_completion_keeps_last_scene(scheduler, small_surface):
    engine, _ = _engine(scheduler, small_surface)
    transitions = []
    engine.subscribe(lambda state: transitions.append(state.is_playing))
    engine.play()

    scheduler.advance(17.5)

    state = engine.state
    assert not state.is_playing
    assert state.current_scene_index == 2
    assert not engine.tick_loop_active
    assert scheduler.pending == 0
    assert transitions[0] is True and transitions[-1] is False


def test_playback_ends_within_one_tick_of_total_duration(scheduler, small_surface):
    engine, store = _engine(scheduler, small_surface)
    engine.play()

    scheduler.advance(store.total_duration - 0.25)
    assert engine.is_playing
    assert engine.state.current_scene_index == 2

    scheduler.advance(0.25)
    assert not engine.is_playing
    assert scheduler.now == pytest.approx(17)


def test_stop_resets_state_and_cancels_loop(scheduler, small_surface):
    audio = AudioTrack(b"mp3", output=RecordingOutput())
    engine, _ = _engine(scheduler, small_surface, audio=audio)
    engine.play()
    scheduler.advance(6)

    engine.stop()

    state = engine.state
    assert not state.is_playing
    assert state.current_scene_index == 0
    assert not state.punchline_revealed
    assert not engine.tick_loop_active
    assert scheduler.pending == 0
    assert not audio.is_playing
    assert audio.position == 0


def test_play_while_playing_restarts_with_single_loop(scheduler, small_surface):
    engine, _ = _engine(scheduler, small_surface)
    engine.play()
    scheduler.advance(6)
    assert engine.state.current_scene_index == 1

    engine.play()

    assert engine.state.current_scene_index == 0
    assert engine.state.scene_start_time == pytest.approx(6)
    assert scheduler.pending == 1


def test_play_without_scenes_is_ignored(scheduler, small_surface):
    engine, _ = _engine(scheduler, small_surface, store=SceneStore([]))
    engine.play()
    assert not engine.is_playing
    assert scheduler.pending == 0


def test_edits_during_playback_apply_next_run(scheduler, small_surface):
    engine, store = _engine(scheduler, small_surface)
    engine.play()
    store.update_scene(0, "duration", 3)

    scheduler.advance(3)
    assert engine.state.current_scene_index == 0
    scheduler.advance(2)
    assert engine.state.current_scene_index == 1


def test_audio_restarts_from_zero_on_play(scheduler, small_surface):
    output = RecordingOutput()
    audio = AudioTrack(b"mp3", output=output)
    taps = []
    audio.add_tap(lambda event, at: taps.append((event, at)))
    engine, _ = _engine(scheduler, small_surface, audio=audio)

    scheduler.advance(1)
    engine.play()
    assert audio.is_playing
    assert audio.started_at == pytest.approx(1)
    assert taps == [("start", 1)]
    assert output.events == ["start"]


def test_blocked_audio_output_does_not_stop_visuals(scheduler, small_surface):
    audio = AudioTrack(b"mp3", output=RecordingOutput(fail=True))
    engine, _ = _engine(scheduler, small_surface, audio=audio)
    engine.play()
    scheduler.advance(5)
    assert engine.state.current_scene_index == 1


def test_audio_track_pause_and_rewind(scheduler):
    audio = AudioTrack(b"mp3", clock=scheduler.time)
    audio.play()
    scheduler.advance(2)
    audio.pause()
    assert audio.position == pytest.approx(2)
    audio.rewind()
    assert audio.position == 0
    assert not audio.is_playing
