from __future__ import annotations

import mimetypes
from pathlib import Path

from runner.types import FixtureUpload, SmokeError, StepResult

IMAGE_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def collect_fixture_uploads(
    fixtures_dir: Path, *, special_field: str, general_field: str
) -> list[FixtureUpload]:
    """Map the fixture images to form fields.

    The first image (by path) goes under ``special_field``; every other image
    is sent as a general photo.
    """
    if not fixtures_dir.is_dir():
        raise SmokeError(f"fixtures directory not found: {fixtures_dir}")
    images = sorted(
        p for p in fixtures_dir.rglob("*") if p.is_file() and p.suffix.lower() in IMAGE_TYPES
    )
    if not images:
        raise SmokeError(f"no images found under {fixtures_dir}")
    uploads = []
    for i, path in enumerate(images):
        content_type = IMAGE_TYPES.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0]
        uploads.append(
            FixtureUpload(
                field_name=special_field if i == 0 else general_field,
                path=path,
                content_type=content_type or "application/octet-stream",
            )
        )
    return uploads


def summarize(steps: list[StepResult], *, expected_steps: int) -> tuple[dict, int]:
    """Compute summary dict and an exit code from the step results."""
    passed = [s for s in steps if s.ok]
    failed = [s for s in steps if not s.ok]
    slowest = max(steps, key=lambda s: s.elapsed_ms, default=None)
    summary = {
        "component": "runner",
        "event": "summary",
        "passed": len(passed),
        "failed": len(failed),
        "skipped": expected_steps - len(steps),
        "timings": {
            "total_ms": round(sum(s.elapsed_ms for s in steps), 2),
            "slowest_step": slowest.name if slowest else None,
        },
        "steps": [
            {"name": s.name, "ok": s.ok, "elapsed_ms": round(s.elapsed_ms, 2)} for s in steps
        ],
        "failures": [{"step": s.name, "error_message": s.detail} for s in failed],
    }
    exit_code = 0 if (len(passed) == expected_steps and not failed) else 1
    return summary, exit_code
