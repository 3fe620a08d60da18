from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Sequence

from agents.base_agent import AgentError, BaseAgent, LLMConfig
from schemas.agent_io import ScenesInput

logger = logging.getLogger(__name__)


def build_narration_script(scenes: Sequence[Dict[str, Any]]) -> str:
    """Join every scene into one read-aloud script with pauses between beats."""
    parts = []
    for i, scene in enumerate(scenes):
        pause = "..." if i < len(scenes) - 1 else ""
        parts.append(f"{scene.get('setup', '')} ... {scene.get('punchline', '')}{pause}")
    return " ... ".join(parts)


class NarrationAgent(BaseAgent):
    name = "narration"
    voice = "onyx"
    speed = 0.95
    response_format = "mp3"

    def default_config(self) -> LLMConfig:
        return LLMConfig.openai(model="tts-1")

    def generate(self, input_json: Dict[str, Any]) -> Dict[str, Any]:
        request = ScenesInput.model_validate(input_json)
        script = build_narration_script(request.scenes)
        logger.info("Synthesizing narration (%d chars) voice=%s", len(script), self.voice)

        try:
            response = self.client.audio.speech.create(
                model=self.llm_config.model,
                voice=self.voice,
                input=script,
                speed=self.speed,
                response_format=self.response_format,
            )
            audio_bytes = response.read()
        except AgentError:
            raise
        except Exception as exc:
            raise AgentError(f"Speech synthesis failed: {exc}") from exc

        return {"audio": base64.b64encode(audio_bytes).decode("ascii")}
