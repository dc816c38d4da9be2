"""Shared test fixtures for cdgraph."""

from __future__ import annotations

from pathlib import Path

import pytest

from cdgraph.config import EngineConfig

# -------------------------------------------------------------------------
# Scenario A: a.py stops exporting foo, b.py (untouched) calls it
# -------------------------------------------------------------------------

A_BEFORE = '''"""Settings helpers."""

from app.state import store

__all__ = ["foo"]


def foo(x):
    config = store["config"]
    if store["user"]:
        store["result"] = config
    return config
'''

A_AFTER = A_BEFORE.replace('__all__ = ["foo"]', "__all__ = []")

B_SOURCE = '''from a import foo


def render():
    return foo(x=1)
'''

# -------------------------------------------------------------------------
# Scenario B: c.py moves from old/ to new/
# -------------------------------------------------------------------------

C_SOURCE = '''from lib import fetch
from app.state import store


def load(user_id):
    return fetch(user_id=user_id)


def save(data):
    store["data"] = data
'''

# -------------------------------------------------------------------------
# Scenario C: one deleted handler, two identical new handlers
# -------------------------------------------------------------------------

HANDLER_SOURCE = '''from app.api import respond


def handler(request):
    return respond(body=request)
'''

# -------------------------------------------------------------------------
# Scenario D: app.py stops passing `verbose` to lib.fetch
# -------------------------------------------------------------------------

LIB_SOURCE = '''def fetch(user_id, verbose=False):
    return user_id
'''

APP_BEFORE = '''from lib import fetch


def load():
    return fetch(user_id=1, verbose=True)
'''

APP_AFTER = '''from lib import fetch


def load():
    return fetch(user_id=1)
'''

VIEW_SOURCE = '''from app import load


def render():
    return load()
'''

PAGE_SOURCE = '''from view import render


def page():
    return render()
'''

# -------------------------------------------------------------------------
# JSX components
# -------------------------------------------------------------------------

BUTTON_JSX = '''export default function Button({ label, onClick, disabled = false }) {
  return <button onClick={onClick} disabled={disabled}>{label}</button>;
}
'''

APP_JSX_BEFORE = '''import Button from "./Button";

export function App({ user, save }) {
  return (
    <div>
      {user && <Button label={user.name} onClick={save} />}
    </div>
  );
}
'''

APP_JSX_AFTER = APP_JSX_BEFORE.replace(" onClick={save}", "")


def unchanged(path: str, content: str) -> dict:
    return {"path": path, "change_kind": "unchanged", "content": content}


@pytest.fixture
def scenario_a() -> list[dict]:
    return [
        {"path": "a.py", "change_kind": "modified", "before": A_BEFORE, "after": A_AFTER},
        unchanged("b.py", B_SOURCE),
    ]


@pytest.fixture
def scenario_b() -> list[dict]:
    return [
        {
            "path": "new/c.py",
            "change_kind": "renamed",
            "old_path": "old/c.py",
            "before": C_SOURCE,
            "after": C_SOURCE,
        },
    ]


@pytest.fixture
def scenario_c() -> list[dict]:
    return [
        {"path": "x.py", "change_kind": "removed", "before": HANDLER_SOURCE},
        {"path": "y.py", "change_kind": "added", "after": HANDLER_SOURCE},
        {"path": "z.py", "change_kind": "added", "after": HANDLER_SOURCE},
    ]


@pytest.fixture
def scenario_d() -> list[dict]:
    return [
        {"path": "app.py", "change_kind": "modified", "before": APP_BEFORE, "after": APP_AFTER},
        unchanged("lib.py", LIB_SOURCE),
        unchanged("view.py", VIEW_SOURCE),
        unchanged("page.py", PAGE_SOURCE),
    ]


@pytest.fixture
def jsx_records() -> list[dict]:
    return [
        {"path": "App.jsx", "change_kind": "modified", "before": APP_JSX_BEFORE, "after": APP_JSX_AFTER},
        unchanged("Button.jsx", BUTTON_JSX),
    ]


@pytest.fixture
def config() -> EngineConfig:
    """Engine config with a single extraction worker."""
    cfg = EngineConfig()
    cfg.extractor.max_workers = 1
    return cfg


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """A directory with a .cdgraph folder, as written by `cdgraph init`."""
    (tmp_path / ".cdgraph").mkdir()
    return tmp_path
