from __future__ import annotations

from typing import Any, Dict, List, Tuple


def validate_script(script: Dict[str, Any]) -> Tuple[bool, List[str]]:
    issues: List[str] = []

    if not str(script.get("title") or "").strip():
        issues.append("Joke script is missing a title.")

    scenes = script.get("scenes")
    if not scenes:
        issues.append("Joke script must contain at least one scene.")
    else:
        for i, scene in enumerate(scenes):
            if not str(scene.get("setup") or "").strip():
                issues.append(f"Scene {i} is missing a setup line.")
            if not str(scene.get("punchline") or "").strip():
                issues.append(f"Scene {i} is missing a punchline.")
            duration = scene.get("duration", 0)
            try:
                positive = float(duration) > 0
            except (TypeError, ValueError):
                positive = False
            if not positive:
                issues.append(f"Scene {i} has non-positive duration.")

    return (len(issues) == 0, issues)
