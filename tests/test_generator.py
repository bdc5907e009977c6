import base64
from types import SimpleNamespace

import pytest

from christmas_collage.errors import GenerationError
from christmas_collage.generator import (
    MAX_REFERENCE_IMAGES,
    GeminiPortraitClient,
    build_prompt,
    extract_image,
)
from christmas_collage.models import EncodedImage
from christmas_collage.scenarios import SCENARIOS


class FakeModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class FakeGenaiClient:
    def __init__(self, response=None, error=None):
        self.models = FakeModels(response=response, error=error)


def image_response(data, mime_type="image/png"):
    parts = [
        SimpleNamespace(text="Here is your portrait", inline_data=None),
        SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type)),
    ]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


def text_only_response():
    parts = [SimpleNamespace(text="I can't do that", inline_data=None)]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


def _reference(i):
    payload = base64.b64encode(f"jpeg-{i}".encode()).decode("ascii")
    return EncodedImage(
        id=f"ref-{i}",
        display_url=f"data:image/jpeg;base64,{payload}",
        payload=payload,
        media_type="image/jpeg",
    )


def test_prompt_embeds_scenario_and_constraints():
    prompt = build_prompt(SCENARIOS[3])
    assert f"Scenario: {SCENARIOS[3].text}" in prompt
    assert "reference photos" in prompt
    assert "Aspect Ratio 1:1" in prompt
    assert "watermarks" in prompt


def test_generate_sends_at_most_four_references_then_prompt():
    client = FakeGenaiClient(response=image_response(b"png-bytes"))
    generator = GeminiPortraitClient(client=client, model="test-model")

    image = generator.generate([_reference(i) for i in range(6)], SCENARIOS[0])

    assert image.data == b"png-bytes"
    assert image.media_type == "image/png"
    call = client.models.calls[0]
    assert call["model"] == "test-model"
    parts = call["contents"]
    assert len(parts) == MAX_REFERENCE_IMAGES + 1
    assert [p.inline_data.data for p in parts[:-1]] == [f"jpeg-{i}".encode() for i in range(4)]
    assert SCENARIOS[0].text in parts[-1].text


def test_generate_requests_square_image_at_configured_size():
    client = FakeGenaiClient(response=image_response(b"png-bytes"))
    GeminiPortraitClient(client=client, image_size="1K").generate([_reference(0)], SCENARIOS[1])

    config = client.models.calls[0]["config"]
    assert config.image_config.aspect_ratio == "1:1"
    assert config.image_config.image_size == "1K"
    assert "IMAGE" in config.response_modalities


def test_base64_string_payload_is_decoded():
    encoded = base64.b64encode(b"raw-image").decode("ascii")
    image = extract_image(image_response(encoded, "image/jpeg"))
    assert image.data == b"raw-image"
    assert image.media_type == "image/jpeg"


def test_response_without_image_raises_generation_error():
    client = FakeGenaiClient(response=text_only_response())
    with pytest.raises(GenerationError, match="no image returned") as exc_info:
        GeminiPortraitClient(client=client).generate([_reference(0)], SCENARIOS[5])
    assert exc_info.value.scenario_index == 5


def test_empty_candidates_raise_generation_error():
    client = FakeGenaiClient(response=SimpleNamespace(candidates=None))
    with pytest.raises(GenerationError):
        GeminiPortraitClient(client=client).generate([_reference(0)], SCENARIOS[0])


def test_sdk_failure_is_wrapped():
    client = FakeGenaiClient(error=TimeoutError("deadline exceeded"))
    with pytest.raises(GenerationError) as exc_info:
        GeminiPortraitClient(client=client).generate([_reference(0)], SCENARIOS[2])
    assert exc_info.value.scenario_index == 2
    assert isinstance(exc_info.value.__cause__, TimeoutError)


def test_malformed_payload_raises_generation_error():
    client = FakeGenaiClient(response=image_response("!!not-base64@@"))
    with pytest.raises(GenerationError, match="malformed image payload") as exc_info:
        GeminiPortraitClient(client=client).generate([_reference(0)], SCENARIOS[8])
    assert exc_info.value.scenario_index == 8


def test_malformed_payloads_become_fallbacks_for_whole_run():
    from christmas_collage.credentials import StaticCredentialProvider
    from christmas_collage.orchestrator import CollageOrchestrator, ConcurrencyPolicy

    client = FakeGenaiClient(response=image_response("!!not-base64@@"))
    orchestrator = CollageOrchestrator(
        StaticCredentialProvider("key"),
        lambda api_key: GeminiPortraitClient(client=client),
        policy=ConcurrencyPolicy.parallel(4),
    )

    results = orchestrator.run([_reference(0)])

    assert [r.id for r in results] == [f"fail-{i}" for i in range(10)]
