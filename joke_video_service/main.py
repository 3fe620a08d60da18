from __future__ import annotations

import logging
import os
from typing import Dict

import uvicorn
from fastapi import FastAPI

from agents.base_agent import load_project_env
from routes.generate_joke import router as generation_router
from routes.studio import router as studio_router

load_project_env()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Dad Joke Video Studio",
    description="Generates a dad joke, illustrates and narrates it, and exports it as a vertical slideshow video.",
    version="0.1.0",
)
app.include_router(generation_router)
app.include_router(studio_router)


@app.get("/health", tags=["system"])
def health_check() -> Dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
