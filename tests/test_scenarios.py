from christmas_collage.scenarios import SCENARIO_COUNT, SCENARIOS


def test_catalog_has_ten_indexed_scenarios():
    assert SCENARIO_COUNT == 10
    assert [s.index for s in SCENARIOS] == list(range(10))


def test_scenario_texts_are_distinct_and_non_empty():
    texts = [s.text for s in SCENARIOS]
    assert all(t.strip() for t in texts)
    assert len(set(texts)) == len(texts)


def test_catalog_is_immutable():
    assert isinstance(SCENARIOS, tuple)
