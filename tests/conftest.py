"""Shared test fixtures."""

import io
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

import pytest
from PIL import Image

from christmas_collage.errors import GenerationError
from christmas_collage.models import EncodedImage, PortraitImage, RawPhoto
from christmas_collage.orchestrator import CollageOrchestrator, ConcurrencyPolicy
from christmas_collage.preprocessor import preprocess
from christmas_collage.session import CollageSession


def make_image_bytes(
    size: tuple[int, int] = (1600, 800),
    color: tuple[int, int, int] = (200, 30, 30),
    fmt: str = "PNG",
) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@dataclass
class FakePortraitGenerator:
    """Generator that returns solid green PNGs and fails on request."""

    fail_indices: set[int] = field(default_factory=set)
    unexpected_indices: set[int] = field(default_factory=set)
    delay: float = 0.0
    calls: list[tuple[int, int]] = field(default_factory=list)
    active: int = 0
    peak: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def generate(self, reference_images, scenario) -> PortraitImage:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.calls.append((scenario.index, len(reference_images)))
        try:
            if self.delay:
                time.sleep(self.delay)
            if scenario.index in self.fail_indices:
                raise GenerationError("quota exceeded", scenario_index=scenario.index)
            if scenario.index in self.unexpected_indices:
                raise RuntimeError("unexpected client bug")
            return PortraitImage(data=make_image_bytes((64, 64), (20, 160, 60)), media_type="image/png")
        finally:
            with self._lock:
                self.active -= 1


@dataclass
class RecordingFactory:
    """Generator factory that remembers which keys it was built with."""

    generator: FakePortraitGenerator
    api_keys: list[str] = field(default_factory=list)

    def __call__(self, api_key: str) -> FakePortraitGenerator:
        self.api_keys.append(api_key)
        return self.generator


@dataclass
class FakeCredentials:
    """Credential provider with a scripted request outcome."""

    api_key: str | None = "test-key"
    granted_on_request: str | None = None
    requests: int = 0

    def has_credential(self) -> bool:
        return bool(self.api_key)

    def request_credential(self) -> None:
        self.requests += 1
        if self.granted_on_request:
            self.api_key = self.granted_on_request

    def get_credential(self) -> str | None:
        return self.api_key


@pytest.fixture
def image_bytes() -> Callable[..., bytes]:
    return make_image_bytes


@pytest.fixture
def fake_generator() -> FakePortraitGenerator:
    return FakePortraitGenerator()


@pytest.fixture
def factory(fake_generator) -> RecordingFactory:
    return RecordingFactory(fake_generator)


@pytest.fixture
def credentials() -> FakeCredentials:
    return FakeCredentials()


@pytest.fixture
def missing_credentials() -> FakeCredentials:
    return FakeCredentials(api_key=None)


@pytest.fixture
def raw_photos() -> list[RawPhoto]:
    return [
        RawPhoto(name=f"baby_{i}.png", data=make_image_bytes((1200, 900), (30 * i, 90, 200)), media_type="image/png")
        for i in range(1, 4)
    ]


@pytest.fixture
def references(raw_photos) -> list[EncodedImage]:
    return [preprocess(photo) for photo in raw_photos]


@pytest.fixture
def make_session(credentials, factory) -> Callable[..., CollageSession]:
    def _make(policy: ConcurrencyPolicy | None = None, creds=None) -> CollageSession:
        creds = creds or credentials
        orchestrator = CollageOrchestrator(creds, factory, policy=policy or ConcurrencyPolicy.parallel(4))
        return CollageSession(orchestrator=orchestrator, credentials=creds)

    return _make
