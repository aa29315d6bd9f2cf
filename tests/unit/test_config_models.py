import pytest
from pathlib import Path
from pydantic import ValidationError
from batchmedia.config.models import (
    RunConfig,
    ScalingDirection,
    VideoConfig,
    normalize_extensions,
)


def _config(**kwargs) -> RunConfig:
    values = {"input_dir": Path("/in"), "output_dir": Path("/out")}
    values.update(kwargs)
    return RunConfig(**values)


def test_valid_config():
    config = _config(scaling_ratio=0.5, workers=4, extensions="heic, .JPG")
    assert config.scaling_ratio == 0.5
    assert config.workers == 4
    assert config.extensions == ["heic", "jpg"]
    assert config.video.codec == "libx265"


def test_config_defaults():
    config = _config(width=800)
    assert config.scaling_ratio == 0.0
    assert config.threshold_width == 0
    assert config.threshold_height == 0
    assert config.workers == 1
    assert config.dry_run is False
    assert config.video.crf == 23
    assert config.video.preset == "medium"
    assert config.video.bitrate is None


def test_size_and_width_are_mutually_exclusive():
    with pytest.raises(ValidationError, match="cannot be used simultaneously"):
        _config(scaling_ratio=0.5, width=800)


def test_size_or_width_required_outside_dry_run():
    with pytest.raises(ValidationError, match="must specify either"):
        _config()


def test_dry_run_allows_no_scaling():
    config = _config(dry_run=True)
    assert config.scaling_direction() == ScalingDirection.DOWN
    assert config.smart_default_direction() == ScalingDirection.NONE
    assert config.effective_thresholds() == (0, 0)


@pytest.mark.parametrize("field,value", [
    ("scaling_ratio", -0.1),
    ("scaling_ratio", 10.5),
    ("width", -1),
    ("threshold_width", -5),
    ("workers", 0),
])
def test_invalid_numeric_values(field, value):
    values = {"width": 800} if field != "width" else {}
    values[field] = value
    with pytest.raises(ValidationError):
        _config(**values)


def test_config_is_frozen():
    config = _config(width=800)
    with pytest.raises(ValidationError):
        config.width = 1024


def test_normalize_extensions():
    assert normalize_extensions(None) == []
    assert normalize_extensions("") == []
    assert normalize_extensions(".HEIC,jpg, jpg ,png") == ["heic", "jpg", "png"]
    assert normalize_extensions(["JPG", ".png"]) == ["jpg", "png"]


def test_progress_file_name_keyed_by_extension_filter():
    assert _config(width=800).progress_file_name == "progress.json"
    assert _config(width=800, extensions="heic,jpg").progress_file_name == "progress_heic_jpg.json"
    assert _config(width=800).progress_file == Path("/out/progress.json")


def test_scaling_direction():
    assert _config(scaling_ratio=2.0).scaling_direction() == ScalingDirection.UP
    assert _config(scaling_ratio=0.5).scaling_direction() == ScalingDirection.DOWN
    assert _config(scaling_ratio=1.0).scaling_direction() == ScalingDirection.NONE
    assert _config(width=4000).scaling_direction() == ScalingDirection.DOWN


def test_video_config_resolution_validation():
    assert VideoConfig(resolution="1280x720").resolution == "1280x720"
    assert VideoConfig(resolution="1280:-2").resolution == "1280:-2"
    assert VideoConfig(resolution="  ").resolution is None
    with pytest.raises(ValidationError):
        VideoConfig(resolution="hd")


def test_video_config_bitrate_and_crf_validation():
    assert VideoConfig(bitrate="2M").bitrate == "2M"
    with pytest.raises(ValidationError):
        VideoConfig(bitrate="fast")
    with pytest.raises(ValidationError):
        VideoConfig(crf=52)
