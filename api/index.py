"""Vercel serverless entrypoint serving the lunch tracker API."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from lunch_tracker.api.app import create_app  # noqa: E402
from lunch_tracker.config import Settings  # noqa: E402
from lunch_tracker.containers import build_container  # noqa: E402

# Serverless instances share state only through Supabase.
settings = Settings(store_backend="supabase")
app = create_app(build_container(settings))

__all__ = ["app"]
