from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path

from tapworks.catalog.registry import GameCatalog, load_game_catalog


_CATALOG: GameCatalog | None = None
_UPDATE_LOCK = threading.Lock()


def init_catalog(*, data_dir: Path) -> GameCatalog:
    """Load the catalog once and cache it.

    Safe to call multiple times; subsequent calls return the already loaded instance.
    """

    global _CATALOG
    if _CATALOG is None:
        _CATALOG = load_game_catalog(data_dir=data_dir)
    return _CATALOG


def reset_catalog_for_tests() -> None:
    """Reset the cached catalog singleton.

    This is intended for tests so they can initialize the catalog from fixture directories.
    """

    global _CATALOG
    _CATALOG = None


def get_catalog() -> GameCatalog:
    if _CATALOG is None:
        raise RuntimeError("Catalog not initialized. Call init_catalog() at startup.")
    return _CATALOG


def update_catalog(change: Callable[[GameCatalog], GameCatalog]) -> GameCatalog:
    """Swap in a new catalog derived from the current one.

    `change` must return a fully built catalog; if it raises, the live catalog
    is left as it was. Engines pick the new instance up on their next operation.
    """

    global _CATALOG
    with _UPDATE_LOCK:
        updated = change(get_catalog())
        _CATALOG = updated
        return updated
