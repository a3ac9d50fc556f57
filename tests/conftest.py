import pathlib
import sys
from datetime import date

import pytest

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

from sportsreg.datastore import JsonFileStore, RecordStore  # noqa: E402
from sportsreg.errors import PersistenceError  # noqa: E402
from sportsreg.ranges import ranges_from_mapping  # noqa: E402
from sportsreg.registry import Registry  # noqa: E402

TODAY = date(2026, 6, 1)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    # Keep developer settings from leaking into app config
    for name in (
        "RECORD_BACKEND",
        "USE_GITHUB",
        "ADMIN_PASSWORD",
        "DATA_FILE",
        "RANGE_FILE",
        "UPLOAD_FOLDER",
        "PHOTO_REQUIRED",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture()
def chest_ranges():
    return {"Greenwood": (100, 102), "Hillside": (200, 249)}


class MemoryStore(RecordStore):
    """Record store kept in memory; ``fail`` makes the next saves raise."""

    name = "memory"

    def __init__(self, records=None):
        self.saved = list(records or [])
        self.saves = 0
        self.messages = []
        self.fail = False

    def load(self):
        return [r.copy() for r in self.saved]

    def save(self, records, message=None):
        if self.fail:
            raise PersistenceError("disk on fire")
        self.saves += 1
        self.messages.append(message)
        self.saved = [r.copy() for r in records]


@pytest.fixture()
def memory_store():
    return MemoryStore()


@pytest.fixture()
def removed_photos():
    return []


@pytest.fixture()
def make_registry(chest_ranges, removed_photos):
    def _make(store=None, ranges=None):
        table = ranges if ranges is not None else chest_ranges
        registry = Registry(
            store if store is not None else MemoryStore(),
            lambda: ranges_from_mapping(table),
            photo_remover=removed_photos.append,
            today=lambda: TODAY,
        )
        registry.start()
        return registry

    return _make


@pytest.fixture()
def registry(make_registry, memory_store):
    return make_registry(memory_store)


@pytest.fixture()
def entry():
    def _entry(name="Ann Lee", school="Greenwood", **overrides):
        data = {
            "school": school,
            "name": name,
            "dob": "2012-04-01",
            "gender": "F",
            "events": ["100m", "Long Jump"],
        }
        data.update(overrides)
        return data

    return _entry


@pytest.fixture()
def app_config(tmp_path, chest_ranges):
    return {
        "TESTING": True,
        "SECRET_KEY": "test",
        "DATA_FILE": str(tmp_path / "results.json"),
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "CHEST_RANGES": chest_ranges,
        "RECORD_BACKEND": "local",
        "ADMIN_PASSWORD": None,
    }


@pytest.fixture()
def app(app_config):
    from sportsreg import create_app

    return create_app(app_config)


@pytest.fixture()
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture()
def json_store(tmp_path):
    return JsonFileStore(tmp_path / "results.json")
