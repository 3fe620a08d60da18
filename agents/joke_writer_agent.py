from __future__ import annotations

from typing import Any, Dict, List

from agents.base_agent import BaseAgent
from schemas.agent_io import JokeWriterInput
from schemas.joke_script import JokeScript, Scene

DEFAULT_DURATIONS = (5, 5, 7)


class JokeWriterAgent(BaseAgent):
    name = "joke_writer"

    def _normalize_llm_script(self, payload: Dict[str, Any], topic: str) -> Dict[str, Any]:
        """
        Adapt the LLM joke payload into the strict JokeScript schema:
        {
          "topic": str,
          "title": str,
          "scenes": [{"setup": str, "punchline": str, "image_prompt": str, "duration": float}, ...]
        }
        """
        scenes: List[Scene] = []
        scenes_raw = payload.get("scenes") or []

        if isinstance(scenes_raw, list):
            for idx, scene in enumerate(scenes_raw):
                if not isinstance(scene, dict):
                    continue
                duration = scene.get("duration") or scene.get("durationSeconds")
                try:
                    duration_value = float(duration) if duration is not None else DEFAULT_DURATIONS[-1]
                except (TypeError, ValueError):
                    duration_value = DEFAULT_DURATIONS[-1]
                scenes.append(
                    Scene(
                        setup=str(scene.get("setup") or ""),
                        punchline=str(scene.get("punchline") or ""),
                        image_prompt=str(scene.get("imagePrompt") or scene.get("image_prompt") or ""),
                        duration=duration_value if duration_value > 0 else DEFAULT_DURATIONS[-1],
                    )
                )

        script = JokeScript(
            topic=str(payload.get("topic") or topic),
            title=str(payload.get("title") or topic),
            scenes=scenes,
        )
        return script.to_json()

    def generate(self, input_json: Dict[str, Any]) -> Dict[str, Any]:
        request = JokeWriterInput.model_validate(input_json)
        system = self.load_template("joke_system.jinja").render()
        prompt = self.load_template("joke_script.jinja").render(
            topic=request.topic,
            scene_count=len(DEFAULT_DURATIONS),
            durations=DEFAULT_DURATIONS,
        )
        llm_result = self.call_llm(prompt, system=system, temperature=0.9, max_tokens=1000)
        raw_payload = self.validate_json(llm_result)
        normalized_payload = self._normalize_llm_script(raw_payload, request.topic)
        return JokeScript.from_json(normalized_payload).to_json()
