"""
Pytest configuration and fixtures for the batch import tests.

The remote processor is replaced by ``FakeProcessor`` (tests/utils/fakes.py)
so that tests can script per-batch results, transport failures, and in-flight
hooks without any network.
"""

import pytest

from app.domain.imports.scheduler import BatchImporter
from tests.utils.fakes import FakeProcessor


@pytest.fixture
def fake_processor():
    return FakeProcessor()


@pytest.fixture
def importer_factory():
    """Build importers with no real delays so tests run instantly."""

    def _factory(processor, **kwargs) -> BatchImporter:
        kwargs.setdefault("pause_poll_interval", 0.001)
        kwargs.setdefault("inter_batch_delay", 0)
        return BatchImporter(processor, **kwargs)

    return _factory
