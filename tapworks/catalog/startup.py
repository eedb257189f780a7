from __future__ import annotations

import os
from pathlib import Path

from tapworks.catalog.singleton import init_catalog


def game_data_dir() -> Path:
    override = os.environ.get("TAPWORKS_GAME_DATA_DIR", "").strip()
    if override:
        return Path(override)
    # project root is two levels up from this file: tapworks/catalog/startup.py
    return Path(__file__).resolve().parents[2] / "game-data"


def init_catalog_for_app() -> None:
    init_catalog(data_dir=game_data_dir())
