#!/usr/bin/env python3
"""Write the tiny images the smoke runner uploads with its order."""
from __future__ import annotations

import base64
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
FX = ROOT / "fixtures"

# 1x1 images so the fixtures stay byte-identical across runs
_PNG_1x1 = base64.b64decode(
    b"iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAwMCAO6wZSYAAAAASUVORK5CYII="
)
_GIF_1x1 = base64.b64decode(b"R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

# The first file by path is sent as the special (portrait) field.
FILES = [
    ("01_portrait.png", _PNG_1x1),
    ("general/beach.gif", _GIF_1x1),
    ("general/city.png", _PNG_1x1),
]


def write_fixtures(target: Path = FX) -> list[Path]:
    written = []
    for rel, data in FILES:
        path = target / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        written.append(path)
    return written


def main() -> None:
    created = write_fixtures()
    print("Created fixtures:")
    for p in created:
        print(" -", p.relative_to(ROOT))


if __name__ == "__main__":
    main()
