from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from agents.base_agent import ScriptParseError
from agents.image_generator_agent import ImageGeneratorAgent
from agents.joke_writer_agent import JokeWriterAgent
from agents.narration_agent import NarrationAgent
from manager.telemetry import OutcomeMonitor, PerformanceMonitor
from schemas.joke_script import GeneratedVideo, GenerationStatus, JokeScript
from validators.script_validator import validate_script

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[GenerationStatus, str], None]

STATUS_MESSAGES: Dict[str, str] = {
    "idle": "",
    "generating-joke": "Writing the cringiest dad joke...",
    "generating-images": "Generating meme-worthy images...",
    "generating-audio": "Recording dad voice narration...",
    "preview": "",
}


class PipelineError(RuntimeError):
    """A generation stage failed; ``stage`` names the status it failed in.

    ``raw`` carries the undecodable LLM output when the joke could not be parsed.
    """

    def __init__(self, stage: GenerationStatus, message: str, raw: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.raw = raw


class AgentManager:
    def __init__(self) -> None:
        self.joke_writer = JokeWriterAgent()
        self.image_generator = ImageGeneratorAgent()
        self.narrator = NarrationAgent()
        self.outcome_monitor: OutcomeMonitor | None = None
        self.performance_monitor: PerformanceMonitor | None = None

    def _record(self, stage: str, success: bool, **metadata: Any) -> None:
        if self.outcome_monitor is not None:
            self.outcome_monitor.log_event(stage, success, metadata)

    def run(self, topic: str, progress_cb: Optional[ProgressCallback] = None) -> GeneratedVideo:
        """Topic -> joke script -> scene images -> narration.

        Raises PipelineError on the first failing stage; nothing generated so far is returned.
        """
        self.outcome_monitor = OutcomeMonitor()
        self.performance_monitor = PerformanceMonitor()

        def update_progress(status: GenerationStatus) -> None:
            if progress_cb:
                try:
                    progress_cb(status, STATUS_MESSAGES.get(status, ""))
                except Exception as exc:
                    logger.debug("Progress callback failed: %s", exc)

        topic = (topic or "").strip()
        if not topic:
            raise PipelineError("idle", "Topic required")

        logger.info("Starting dad joke pipeline for topic=%r", topic)

        # 1. Joke script
        update_progress("generating-joke")
        try:
            with self.performance_monitor.track("joke_writer.generate"):
                joke_json = self.joke_writer.generate({"topic": topic})
        except Exception as exc:
            self._record("joke_writer.generate", False, error=str(exc))
            raw = exc.raw if isinstance(exc, ScriptParseError) else None
            raise PipelineError("generating-joke", f"Joke generation failed: {exc}", raw=raw) from exc

        ok, issues = validate_script(joke_json)
        self._record("joke_writer.validate", ok, issues=issues)
        if not ok:
            raise PipelineError("generating-joke", f"Joke generation failed: {'; '.join(issues)}")
        joke = JokeScript.from_json(joke_json)
        logger.info("Joke '%s' written with %d scenes", joke.title, len(joke.scenes))

        # 2. Images
        update_progress("generating-images")
        scenes_payload = [scene.model_dump() for scene in joke.scenes]
        try:
            with self.performance_monitor.track("image_generator.generate"):
                images = self.image_generator.generate({"scenes": scenes_payload}).get("images", [])
        except Exception as exc:
            self._record("image_generator.generate", False, error=str(exc))
            raise PipelineError("generating-images", f"Image generation failed: {exc}") from exc
        self._record("image_generator.generate", True, count=sum(1 for image in images if image))

        scenes = [
            scene.model_copy(update={"image_base64": images[i] if i < len(images) else None})
            for i, scene in enumerate(joke.scenes)
        ]
        joke = joke.model_copy(update={"scenes": scenes})

        # 3. Narration
        update_progress("generating-audio")
        try:
            with self.performance_monitor.track("narrator.generate"):
                audio = self.narrator.generate({"scenes": scenes_payload}).get("audio")
        except Exception as exc:
            self._record("narrator.generate", False, error=str(exc))
            raise PipelineError("generating-audio", f"Audio generation failed: {exc}") from exc
        self._record("narrator.generate", bool(audio))

        update_progress("preview")
        return GeneratedVideo(
            joke=joke,
            audio_base64=audio,
            status="preview",
            telemetry={
                "performance": self.performance_monitor.summary(),
                "outcomes": self.outcome_monitor.summary(),
            },
        )
