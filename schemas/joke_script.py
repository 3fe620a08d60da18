from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

GenerationStatus = Literal[
    "idle",
    "generating-joke",
    "generating-images",
    "generating-audio",
    "preview",
    "exporting",
]


class Scene(BaseModel):
    # LLM and browser payloads use camelCase keys
    model_config = ConfigDict(populate_by_name=True)

    setup: str
    punchline: str
    image_prompt: str = Field("", validation_alias=AliasChoices("image_prompt", "imagePrompt"))
    duration: float = Field(..., gt=0, validation_alias=AliasChoices("duration", "durationSeconds"))
    image_base64: Optional[str] = Field(None, validation_alias=AliasChoices("image_base64", "imageBase64"))


class JokeScript(BaseModel):
    topic: str
    title: str
    scenes: List[Scene]

    @property
    def total_duration(self) -> float:
        return sum(scene.duration for scene in self.scenes)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "JokeScript":
        return cls.model_validate(data)


class GeneratedVideo(BaseModel):
    joke: Optional[JokeScript] = None
    audio_base64: Optional[str] = None
    status: GenerationStatus = "idle"
    error: Optional[str] = None
    telemetry: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "GeneratedVideo":
        return cls.model_validate(data)
