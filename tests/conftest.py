# tests/conftest.py
import os
import sys
import threading

import pytest
from fastapi.testclient import TestClient

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from adaptive_rag.config import load_coordinator_config
from adaptive_rag.memory.shared_store import SharedMemoryStore
from adaptive_rag.models import (
    DeviceConstraints,
    ExecutionResult,
    ProcessingPower,
    StrategyDescriptor,
)
from adaptive_rag.services import build_services


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeDelegate:
    """Records calls and returns a fixed answer."""

    def __init__(self, answer: str = "Stub answer from the document."):
        self.answer = answer
        self.calls = []

    def execute(self, content: str, question: str, strategy: StrategyDescriptor, cancel_event: threading.Event):
        self.calls.append((question, strategy.key))
        return ExecutionResult(
            answer=self.answer,
            chunks_created=3,
            refused=False,
            confidence_score=0.9,
        )


# ============================================================
# CONTENT SAMPLES
# ============================================================

COMPLEX_SENTENCE = (
    "Comprehensive organizational infrastructure considerations necessitate sophisticated "
    "interdisciplinary collaboration regarding institutional accountability, regulatory "
    "compliance and operational sustainability across heterogeneous international environments"
)


def build_complex_html() -> str:
    """Long HTML page: 8 chapters, 40 long paragraphs, very low readability."""

    parts = ["<html><body>"]

    for chapter in range(8):
        parts.append(f"<h2>Operational Governance Chapter {chapter + 1}</h2>")
        for _ in range(5):
            parts.append("<p>" + ", ".join([COMPLEX_SENTENCE] * 7) + ".</p>")

    parts.append("</body></html>")

    return "\n\n".join(parts)


def build_simple_text() -> str:
    """300 short words in six-word sentences."""
    return " ".join(["The cat sat on the mat."] * 50)


@pytest.fixture
def complex_html():
    return build_complex_html()


@pytest.fixture
def simple_text():
    return build_simple_text()


# ============================================================
# DEVICES
# ============================================================

@pytest.fixture
def desktop():
    return DeviceConstraints(
        is_mobile=False,
        has_internet=True,
        processing_power=ProcessingPower.HIGH,
        memory_available=4096,
    )


@pytest.fixture
def offline_phone():
    return DeviceConstraints(
        is_mobile=True,
        has_internet=False,
        processing_power=ProcessingPower.LOW,
        memory_available=512,
    )


# ============================================================
# SERVICES
# ============================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    store = SharedMemoryStore(clock=clock)
    yield store
    store.close()


@pytest.fixture
def fake_delegate():
    return FakeDelegate()


@pytest.fixture
def services(clock, fake_delegate):
    services = build_services(
        config=load_coordinator_config(max_retries=0, timeout_seconds=5.0),
        clock=clock,
        delegate=fake_delegate,
    )
    yield services
    services.close()


@pytest.fixture
def client(services):
    """
    FastAPI test client bound to injected services.

    Used to make requests to the API in tests.
    """
    from adaptive_rag.main import create_app

    with TestClient(create_app(services)) as test_client:
        yield test_client
