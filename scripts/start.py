#!/usr/bin/env python3
"""
Production startup: run the release phase, then exec gunicorn.

Usage:
    python scripts/start.py

Realtime feeds (SSE) fan out from an in-process hub, so every admin page must be
served by the same process that handles the writes. Gunicorn therefore runs a
single gthread worker; scale with THREADS, not workers.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        print(f"ERROR: Invalid {name} value '{raw}'. Must be an integer.", flush=True)
        sys.exit(1)
    if not low <= value <= high:
        print(f"ERROR: {name}={value} out of range {low}-{high}.", flush=True)
        sys.exit(1)
    return value


def main() -> None:
    if not os.environ.get("PORT", "").strip():
        print("WARNING: PORT not set, using default 8080", flush=True)
    port = _int_env("PORT", 8080, low=1, high=65535)
    threads = _int_env("THREADS", 16, low=1, high=256)
    # Each SSE client pins a thread; keep most threads for ordinary requests.
    os.environ.setdefault("REALTIME_MAX_STREAMS", str(max(1, threads // 3)))
    print(f"PORT={port} validated", flush=True)

    print("=== Running release phase ===", flush=True)
    from scripts.release import run_release
    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    print("=== Starting gunicorn ===", flush=True)
    print(f"Gunicorn binding to 0.0.0.0:{port} (1 worker, {threads} threads)", flush=True)

    # exec so gunicorn becomes PID 1 and receives signals directly
    os.execvp(
        "gunicorn",
        [
            "gunicorn",
            "app.wsgi:app",
            "--bind", f"0.0.0.0:{port}",
            "--worker-class", "gthread",
            "--workers", "1",
            "--threads", str(threads),
            # SSE responses stay open; the keepalive comment resets this timer.
            "--timeout", "120",
            "--access-logfile", "-",
            "--error-logfile", "-",
        ],
    )


if __name__ == "__main__":
    main()
