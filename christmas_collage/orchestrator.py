"""
orchestrator.py — Fan the 10 scenarios out to the generation client and
collect exactly one GeneratedImage per scenario.

Concurrency policy (one parameter, three strategies):
  sequential   one call at a time, in index order
  batched(n)   groups of n run concurrently; the next group starts when the
               whole group has settled
  parallel(w)  all scenarios submitted to a pool of w workers, collected as
               they complete

Whatever the strategy:
  - a GenerationError only replaces that scenario with a fallback tile
  - on_progress is called once per scenario (10 calls, non-decreasing,
    ending at 10), always from the thread that called run()
  - results are returned sorted by scenario_index
"""

from __future__ import annotations

import base64
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from .credentials import CredentialProvider
from .errors import GenerationError, MissingCredentialError
from .generator import PortraitGenerator
from .models import EncodedImage, GeneratedImage
from .scenarios import SCENARIOS, Scenario

logger = logging.getLogger(__name__)

FALLBACK_IMAGE_URL = "https://picsum.photos/1024/1024?grayscale"
FALLBACK_PROMPT = "Generation Failed"

ProgressCallback = Callable[[int], None]
GeneratorFactory = Callable[[str], PortraitGenerator]


class ConcurrencyMode(str, Enum):
    SEQUENTIAL = "sequential"
    BATCHED = "batched"
    PARALLEL = "parallel"


@dataclass(frozen=True)
class ConcurrencyPolicy:
    mode: ConcurrencyMode = ConcurrencyMode.PARALLEL
    batch_size: int = 3
    max_workers: int = 4

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

    @classmethod
    def sequential(cls) -> "ConcurrencyPolicy":
        return cls(mode=ConcurrencyMode.SEQUENTIAL)

    @classmethod
    def batched(cls, size: int = 3) -> "ConcurrencyPolicy":
        return cls(mode=ConcurrencyMode.BATCHED, batch_size=size)

    @classmethod
    def parallel(cls, max_workers: int = 4) -> "ConcurrencyPolicy":
        return cls(mode=ConcurrencyMode.PARALLEL, max_workers=max_workers)

    @classmethod
    def from_settings(cls, settings) -> "ConcurrencyPolicy":
        return cls(
            mode=ConcurrencyMode(settings.concurrency),
            batch_size=settings.batch_size,
            max_workers=settings.max_workers,
        )


class _ProgressTracker:
    """Counts settled scenarios and forwards each count to the callback."""

    def __init__(self, on_progress: Optional[ProgressCallback]) -> None:
        self._on_progress = on_progress
        self.completed = 0
        self.results: Dict[int, GeneratedImage] = {}

    def settle(self, result: GeneratedImage) -> None:
        self.results[result.scenario_index] = result
        self.completed += 1
        if self._on_progress is not None:
            self._on_progress(self.completed)


def _chunks(items: Sequence[Scenario], size: int) -> Iterator[Sequence[Scenario]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def fallback_image(scenario: Scenario) -> GeneratedImage:
    return GeneratedImage(
        id=f"fail-{scenario.index}",
        display_url=FALLBACK_IMAGE_URL,
        scenario_index=scenario.index,
        prompt=FALLBACK_PROMPT,
        succeeded=False,
    )


class CollageOrchestrator:
    """Runs one generation pass over the scenario catalog."""

    def __init__(
        self,
        credentials: CredentialProvider,
        generator_factory: GeneratorFactory,
        policy: Optional[ConcurrencyPolicy] = None,
        scenarios: Sequence[Scenario] = SCENARIOS,
    ) -> None:
        self.credentials = credentials
        self.generator_factory = generator_factory
        self.policy = policy or ConcurrencyPolicy()
        self.scenarios = tuple(scenarios)

    def run(
        self,
        reference_images: Sequence[EncodedImage],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[GeneratedImage]:
        """
        Generate one image per scenario.

        Raises:
            MissingCredentialError: before any call is issued, if no key is available.
        """
        api_key = self.credentials.get_credential()
        if not api_key:
            raise MissingCredentialError("API key not found. Please select a key.")

        # A fresh client per run so a newly selected key is always used.
        generator = self.generator_factory(api_key)
        references = tuple(reference_images)
        tracker = _ProgressTracker(on_progress)
        t0 = time.monotonic()

        mode = self.policy.mode
        if mode is ConcurrencyMode.SEQUENTIAL:
            self._run_sequential(generator, references, tracker)
        elif mode is ConcurrencyMode.BATCHED:
            self._run_batched(generator, references, tracker)
        else:
            self._run_parallel(generator, references, tracker)

        results = sorted(tracker.results.values(), key=lambda r: r.scenario_index)
        failed = sum(1 for r in results if not r.succeeded)
        logger.info(
            "Generated %s/%s portraits (%s mode, %.1fs)",
            len(results) - failed, len(results), mode.value, time.monotonic() - t0,
        )
        return results

    # ── Strategies ────────────────────────────────────────────────────────────

    def _run_sequential(self, generator, references, tracker: _ProgressTracker) -> None:
        for scenario in self.scenarios:
            tracker.settle(self._generate_one(generator, references, scenario))

    def _run_batched(self, generator, references, tracker: _ProgressTracker) -> None:
        for group in _chunks(self.scenarios, self.policy.batch_size):
            with ThreadPoolExecutor(max_workers=len(group)) as executor:
                outcomes = list(
                    executor.map(lambda s: self._generate_one(generator, references, s), group)
                )
            for outcome in outcomes:
                tracker.settle(outcome)

    def _run_parallel(self, generator, references, tracker: _ProgressTracker) -> None:
        max_workers = min(len(self.scenarios), self.policy.max_workers) or 1
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(self._generate_one, generator, references, scenario)
                for scenario in self.scenarios
            ]
            for future in as_completed(futures):
                tracker.settle(future.result())

    # ── Single scenario ───────────────────────────────────────────────────────

    def _generate_one(
        self,
        generator: PortraitGenerator,
        references: Sequence[EncodedImage],
        scenario: Scenario,
    ) -> GeneratedImage:
        try:
            image = generator.generate(references, scenario)
        except GenerationError as exc:
            logger.warning("Failed to generate scenario %s: %s", scenario.index, exc)
            return fallback_image(scenario)

        encoded = base64.b64encode(image.data).decode("ascii")
        return GeneratedImage(
            id=f"gen-{scenario.index}-{int(time.time() * 1000)}",
            display_url=f"data:{image.media_type};base64,{encoded}",
            scenario_index=scenario.index,
            prompt=scenario.text,
            succeeded=True,
            image_data=image.data,
        )
