"""Shared fixtures: a real SQLite store under tmp_path and generated images."""

import io

import pytest
import pytest_asyncio
from PIL import Image

from dal.record_store import RecordStore
from services.record_repository import RecordRepository
from utils.database_init import AsyncDatabaseInitializer


def make_image_bytes(size=(64, 48), fmt="PNG", mode="RGB", color=(200, 40, 40)):
    """Encode a solid-color image of the given size."""
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def db_dir(tmp_path):
    path = tmp_path / "db"
    path.mkdir()
    return path


@pytest.fixture
def initializer(db_dir):
    return AsyncDatabaseInitializer(db_dir)


@pytest_asyncio.fixture
async def store(initializer):
    s = RecordStore(initializer)
    await s.open()
    yield s
    await s.close()


@pytest_asyncio.fixture
async def repo(store):
    return RecordRepository(store)
