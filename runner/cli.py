from __future__ import annotations

import argparse
import os
from pathlib import Path


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments for the smoke runner."""
    parser = argparse.ArgumentParser(description="Order intake end-to-end smoke runner")
    parser.add_argument("--base-url", default=os.getenv("BASE_URL", "http://127.0.0.1:3000"))
    parser.add_argument("--admin-user", default=os.getenv("ADMIN_USERNAME", "admin"))
    parser.add_argument("--admin-password", default=os.getenv("ADMIN_PASSWORD", ""))
    parser.add_argument("--fixtures", default=str(Path(__file__).resolve().parents[1] / "fixtures"))
    parser.add_argument("--timeout", type=float, default=30.0, help="health wait, seconds")
    parser.add_argument("--special-field", default="01_Portrait")
    parser.add_argument(
        "--general-field", default=os.getenv("GENERAL_PHOTOS_FIELD", "12_Genel_Photos")
    )
    return parser.parse_args(argv)
