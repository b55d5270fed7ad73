"""Shared test fixtures."""

import mlflow
import pytest

from codetrace.core.types import Provision
from codetrace.storage.store import ProvisionStore


@pytest.fixture(autouse=True)
def _disable_mlflow_tracing():
    """Disable MLflow tracing so tests write nothing to mlruns/."""
    mlflow.tracing.disable()
    yield
    mlflow.tracing.enable()


@pytest.fixture
async def store(tmp_path):
    """An isolated, open provision store backed by a temp file."""
    s = ProvisionStore(f"sqlite+aiosqlite:///{tmp_path / 'codes.db'}")
    await s.open()
    yield s
    await s.close()


@pytest.fixture
def make_provision():
    """Factory for provisions with sensible defaults."""

    def _make(content: str, **overrides) -> Provision:
        fields = {
            "source": "municipal_code",
            "chapter": "Chapter 591",
            "chapter_title": "Noise",
            "reference": "Chapter 591 (Part 1)",
            "content": content,
            "source_url": "https://www.toronto.ca/legdocs/municode/1184_591.pdf",
        }
        fields.update(overrides)
        return Provision(**fields)

    return _make
