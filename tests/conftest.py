import os
import sys

import pytest

# Ensure project root is importable (so `import main` / `import cli` work without installing)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from vsr import db
from vsr.models import RoutingObject, Subset
from vsr.settings import Settings
from vsr.store import MemoryStore


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Point the status/event database at a fresh sqlite file per test."""
    monkeypatch.setattr(db, "settings", Settings(db_path=str(tmp_path / "vsr.db")))
    db.init_db()
    return tmp_path


def _baseline(name, host, versions, namespace="shop"):
    return RoutingObject(
        name=name,
        namespace=namespace,
        host=host,
        subsets=[Subset(name=v, labels={"version": v}) for v in versions],
    )


@pytest.fixture
def baseline():
    return _baseline


@pytest.fixture
def shop_store():
    """payments has a v1 baseline, orders only a v0 one."""
    return MemoryStore(
        [
            _baseline("payments", "payments", ["v1"]),
            _baseline("orders", "orders.shop", ["v0"]),
        ]
    )
