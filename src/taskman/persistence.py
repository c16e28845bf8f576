"""Load and save the persisted view state."""

import json
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import TypeVar

import structlog

from taskman.models import AppViewState, SortKey, Window

log = structlog.get_logger()

E = TypeVar("E", bound=Enum)


def _enum_value(enum_cls: type[E], raw: object, default: E) -> E:
    try:
        return enum_cls(raw)
    except ValueError:
        return default


def view_state_from_dict(data: object) -> AppViewState:
    """Build an AppViewState, defaulting missing or unknown fields."""
    defaults = AppViewState()
    if not isinstance(data, dict):
        return defaults
    return AppViewState(
        current_window=_enum_value(
            Window, data.get("current_window"), defaults.current_window
        ),
        processes_sort=_enum_value(
            SortKey, data.get("processes_sort"), defaults.processes_sort
        ),
    )


def view_state_to_dict(state: AppViewState) -> dict[str, str]:
    return {
        "current_window": state.current_window.value,
        "processes_sort": state.processes_sort.value,
    }


def load_view_state(path: Path) -> AppViewState:
    """Load view state from path. Missing or unreadable files give defaults."""
    if not path.exists():
        return AppViewState()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        log.warning("view_state_load_failed", path=str(path), error=str(e))
        return AppViewState()
    return view_state_from_dict(data)


def save_view_state(path: Path, state: AppViewState) -> None:
    """Write view state atomically (temp file, then replace)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".view_state.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(view_state_to_dict(state), f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    log.debug("view_state_saved", path=str(path))
