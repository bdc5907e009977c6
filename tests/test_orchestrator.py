import threading

import pytest

from christmas_collage.credentials import StaticCredentialProvider
from christmas_collage.errors import MissingCredentialError
from christmas_collage.orchestrator import (
    FALLBACK_IMAGE_URL,
    CollageOrchestrator,
    ConcurrencyMode,
    ConcurrencyPolicy,
)
from christmas_collage.scenarios import SCENARIOS

POLICIES = [
    ConcurrencyPolicy.sequential(),
    ConcurrencyPolicy.batched(3),
    ConcurrencyPolicy.parallel(4),
]


def _run(credentials, factory, policy, references):
    progress = []
    orchestrator = CollageOrchestrator(credentials, factory, policy=policy)
    results = orchestrator.run(references, on_progress=progress.append)
    return results, progress


@pytest.mark.parametrize("policy", POLICIES, ids=lambda p: p.mode.value)
def test_every_mode_returns_ten_sorted_results(policy, credentials, factory, references):
    results, progress = _run(credentials, factory, policy, references)

    assert [r.scenario_index for r in results] == list(range(10))
    assert all(r.succeeded for r in results)
    assert [r.prompt for r in results] == [s.text for s in SCENARIOS]
    assert all(r.display_url.startswith("data:image/png;base64,") for r in results)
    assert progress == sorted(progress)
    assert len(progress) == 10
    assert progress[-1] == 10


@pytest.mark.parametrize("policy", POLICIES, ids=lambda p: p.mode.value)
def test_failed_scenario_becomes_fallback(policy, credentials, factory, fake_generator, references):
    fake_generator.fail_indices = {4}
    results, progress = _run(credentials, factory, policy, references)

    assert len(results) == 10
    failed = results[4]
    assert not failed.succeeded
    assert failed.id == "fail-4"
    assert failed.display_url == FALLBACK_IMAGE_URL
    assert failed.prompt == "Generation Failed"
    assert failed.image_data is None
    assert all(r.succeeded for i, r in enumerate(results) if i != 4)
    assert progress[-1] == 10


def test_all_scenarios_failing_still_yields_ten_fallbacks(credentials, factory, fake_generator, references):
    fake_generator.fail_indices = set(range(10))
    results, progress = _run(credentials, factory, ConcurrencyPolicy.parallel(4), references)

    assert [r.id for r in results] == [f"fail-{i}" for i in range(10)]
    assert progress == list(range(1, 11))


def test_generated_ids_carry_scenario_index(credentials, factory, references):
    results, _ = _run(credentials, factory, ConcurrencyPolicy.sequential(), references)
    assert all(r.id.startswith(f"gen-{r.scenario_index}-") for r in results)


def test_every_call_gets_the_same_references(credentials, factory, fake_generator, references):
    _run(credentials, factory, ConcurrencyPolicy.parallel(4), references)
    assert sorted(i for i, _ in fake_generator.calls) == list(range(10))
    assert {n for _, n in fake_generator.calls} == {len(references)}


def test_missing_credential_issues_no_calls(factory, fake_generator, references):
    progress = []
    orchestrator = CollageOrchestrator(StaticCredentialProvider(), factory)
    with pytest.raises(MissingCredentialError):
        orchestrator.run(references, on_progress=progress.append)

    assert factory.api_keys == []
    assert fake_generator.calls == []
    assert progress == []


def test_credential_is_read_once_per_run(credentials, factory, references):
    credentials.api_key = "key-A"
    orchestrator = CollageOrchestrator(credentials, factory)
    orchestrator.run(references)
    credentials.api_key = "key-B"
    orchestrator.run(references)

    assert factory.api_keys == ["key-A", "key-B"]


def test_parallel_mode_respects_worker_limit(credentials, factory, fake_generator, references):
    fake_generator.delay = 0.02
    _run(credentials, factory, ConcurrencyPolicy.parallel(2), references)
    assert 1 <= fake_generator.peak <= 2


def test_sequential_mode_runs_one_at_a_time_in_order(credentials, factory, fake_generator, references):
    fake_generator.delay = 0.005
    _run(credentials, factory, ConcurrencyPolicy.sequential(), references)
    assert fake_generator.peak == 1
    assert [i for i, _ in fake_generator.calls] == list(range(10))


def test_batched_mode_reports_progress_after_each_group(credentials, factory, references):
    results, progress = _run(credentials, factory, ConcurrencyPolicy.batched(3), references)
    assert progress == list(range(1, 11))
    assert len(results) == 10


def test_progress_is_reported_on_calling_thread(credentials, factory, references):
    threads = set()
    orchestrator = CollageOrchestrator(credentials, factory, policy=ConcurrencyPolicy.parallel(4))
    orchestrator.run(references, on_progress=lambda _: threads.add(threading.get_ident()))
    assert threads == {threading.get_ident()}


def test_unexpected_error_is_not_swallowed(credentials, factory, fake_generator, references):
    fake_generator.unexpected_indices = {7}
    orchestrator = CollageOrchestrator(credentials, factory, policy=ConcurrencyPolicy.sequential())
    with pytest.raises(RuntimeError, match="unexpected client bug"):
        orchestrator.run(references)


@pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"max_workers": 0}])
def test_invalid_policy_is_rejected(kwargs):
    with pytest.raises(ValueError):
        ConcurrencyPolicy(**kwargs)


def test_policy_from_settings():
    from christmas_collage.config import Settings

    policy = ConcurrencyPolicy.from_settings(Settings(concurrency="batched", batch_size=5, max_workers=2))
    assert policy.mode is ConcurrencyMode.BATCHED
    assert policy.batch_size == 5
    assert policy.max_workers == 2
