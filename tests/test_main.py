from pathlib import Path

import pytest

from christmas_collage.config import Settings
from christmas_collage.main import apply_overrides, parse_args, read_photos


def test_parse_args_defaults():
    args = parse_args(["a.jpg", "b.jpg", "c.jpg"])
    assert args.photos == [Path("a.jpg"), Path("b.jpg"), Path("c.jpg")]
    assert args.mode is None
    assert not args.zip


def test_cli_overrides_settings():
    args = parse_args(["a.jpg", "--mode", "batched", "--batch-size", "2", "--workers", "6"])
    settings = apply_overrides(Settings(), args)
    assert settings.concurrency == "batched"
    assert settings.batch_size == 2
    assert settings.max_workers == 6


def test_unknown_mode_is_rejected():
    with pytest.raises(SystemExit):
        parse_args(["a.jpg", "--mode", "turbo"])


def test_read_photos(tmp_path, image_bytes):
    path = tmp_path / "baby.png"
    path.write_bytes(image_bytes((10, 10)))

    photos = read_photos([path])

    assert photos[0].name == "baby.png"
    assert photos[0].media_type == "image/png"


def test_read_photos_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_photos([tmp_path / "nope.jpg"])


@pytest.mark.parametrize("flag", ["--workers", "--batch-size"])
@pytest.mark.parametrize("value", ["0", "-2", "many"])
def test_non_positive_pool_sizes_are_rejected(flag, value):
    with pytest.raises(SystemExit):
        parse_args(["a.jpg", flag, value])


def test_bad_template_stops_before_generation(tmp_path, image_bytes, monkeypatch):
    import christmas_collage.main as cli

    photos = []
    for i in range(3):
        path = tmp_path / f"baby{i}.png"
        path.write_bytes(image_bytes((10, 10)))
        photos.append(str(path))
    template = tmp_path / "tree.png"
    template.write_bytes(b"not an image")

    def fail_build_session(*args, **kwargs):
        raise AssertionError("session must not be built")

    monkeypatch.setattr(cli, "build_session", fail_build_session)

    assert cli.main(photos + ["--template", str(template), "--output", str(tmp_path / "out")]) == 1
    assert cli.main(photos + ["--template", str(tmp_path / "missing.png")]) == 1
