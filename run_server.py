"""Entry point for running the story playback API with Uvicorn."""
from __future__ import annotations

import os

import uvicorn


def main() -> None:
  port = int(os.getenv("STORYPLAY_SERVER_PORT", "8000"))
  reload = os.getenv("UVICORN_RELOAD", "true").lower() == "true"
  uvicorn.run("storyplay.main:app", host="0.0.0.0", port=port, reload=reload)


if __name__ == "__main__":
  main()
