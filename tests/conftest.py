"""Shared fixtures: in-memory documents, spy file loaders and image handles."""

from collections import Counter
from pathlib import Path

import pytest

from tmx_loader import TiledResourceOptions

FIXTURES = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


class SpyFileLoader:
    """File loader over a dict of documents that counts every fetch."""

    def __init__(self, documents, failing=()):
        self.documents = dict(documents)
        self.failing = set(failing)
        self.calls = Counter()
        self.kinds = {}

    async def __call__(self, path, kind):
        self.calls[path] += 1
        self.kinds[path] = kind
        if path in self.failing:
            raise IOError(f"refused to fetch {path}")
        if path not in self.documents:
            raise FileNotFoundError(path)
        return self.documents[path]


class SpyImage:
    """Image handle that only records that it was loaded."""

    loads = Counter()

    def __init__(self, path):
        self.path = path
        self.loaded = False

    async def load(self):
        SpyImage.loads[self.path] += 1
        self.loaded = True
        return self


@pytest.fixture
def fixture_documents():
    """Every fixture file, keyed as if it lived under maps/."""
    return {f"maps/{p.name}": p.read_text(encoding="utf-8") for p in FIXTURES.iterdir() if p.is_file()}


@pytest.fixture
def spy_loader(fixture_documents):
    return SpyFileLoader(fixture_documents)


@pytest.fixture
def spy_images():
    SpyImage.loads = Counter()
    return SpyImage


@pytest.fixture
def options(spy_loader, spy_images):
    return TiledResourceOptions(file_loader=spy_loader, image_loader=spy_images)
