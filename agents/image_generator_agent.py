from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from agents.base_agent import AgentError, BaseAgent, LLMConfig
from schemas.agent_io import ScenesInput

logger = logging.getLogger(__name__)

STYLE_SUFFIX = "Style: bright colorful cartoon, meme-worthy, exaggerated expressions, no text in image."


class ImageGeneratorAgent(BaseAgent):
    """Generate one image per scene, all requests in flight at once."""

    name = "image_generator"
    size = "1024x1024"
    quality = "low"

    def default_config(self) -> LLMConfig:
        return LLMConfig.openai(model="gpt-image-1")

    def build_prompt(self, image_prompt: str) -> str:
        return f"{image_prompt}. {STYLE_SUFFIX}"

    def _generate_one(self, prompt: str) -> Optional[str]:
        try:
            result = self.client.images.generate(
                model=self.llm_config.model,
                prompt=self.build_prompt(prompt),
                n=1,
                size=self.size,
                quality=self.quality,
            )
        except AgentError:
            raise
        except Exception as exc:
            raise AgentError(f"Image request failed: {exc}") from exc
        data = getattr(result, "data", None) or []
        return data[0].b64_json if data else None

    def generate(self, input_json: Dict[str, Any]) -> Dict[str, Any]:
        request = ScenesInput.model_validate(input_json)
        prompts = [str(scene.get("imagePrompt") or scene.get("image_prompt") or "") for scene in request.scenes]
        if not prompts:
            return {"images": []}

        logger.info("Generating %d images with model=%s", len(prompts), self.llm_config.model)
        # map() yields in submission order, so images stay aligned with scenes
        with ThreadPoolExecutor(max_workers=len(prompts)) as pool:
            images: List[Optional[str]] = list(pool.map(self._generate_one, prompts))
        return {"images": images}
