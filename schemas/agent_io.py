from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class JokeWriterInput(BaseModel):
    topic: str


class ScenesInput(BaseModel):
    scenes: List[Dict[str, Any]]


class SceneUpdate(BaseModel):
    setup: Optional[str] = None
    punchline: Optional[str] = None
    duration: Optional[float] = Field(None, ge=3, le=12, multiple_of=0.5)


class SceneMove(BaseModel):
    direction: Literal["up", "down"]
