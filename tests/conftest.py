import pytest
import os
import yaml
from pathlib import Path
import pillow_heif
from PIL import Image

from batchmedia.config.models import RunConfig
from batchmedia.infrastructure.event_bus import EventBus

ORIENTATION_TAG = 0x0112

pillow_heif.register_heif_opener()

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def make_config(test_input_dir, test_output_dir):
    """Returns a factory for RunConfig objects rooted at the test directories."""
    def _make(**overrides) -> RunConfig:
        values = {
            "input_dir": test_input_dir,
            "output_dir": test_output_dir,
            "scaling_ratio": 0.5,
        }
        values.update(overrides)
        return RunConfig(**values)
    return _make


@pytest.fixture
def config_yaml_path(tmp_path, test_input_dir, test_output_dir):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "batchmedia.yaml"

    content = {
        'input_dir': str(test_input_dir),
        'output_dir': str(test_output_dir),
        'scaling_ratio': 0.5,
        'threshold_width': 1280,
        'extensions': ['jpg', 'heic'],
        'workers': 3,
        'video': {
            'codec': 'libx264',
            'crf': 28,
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def test_input_dir(tmp_path):
    """Creates a test input directory."""
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    return input_dir

@pytest.fixture
def test_output_dir(tmp_path):
    """Output root; created by the code under test."""
    return tmp_path / "output"

# ============================================================================
# Image Fixtures (generated with Pillow at test time)
# ============================================================================

def write_jpeg(path: Path, size=(64, 32), color=(200, 30, 30), orientation=None, mtime=None) -> Path:
    """Writes a solid-color JPEG, optionally with an EXIF orientation tag."""
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, color)
    if orientation is not None:
        exif = Image.Exif()
        exif[ORIENTATION_TAG] = orientation
        image.save(path, "JPEG", quality=90, exif=exif)
    else:
        image.save(path, "JPEG", quality=90)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


PNG_COLORS = {
    "RGBA": (10, 120, 200, 128),
    "RGB": (10, 120, 200),
    "L": 128,
}


def write_png(path: Path, size=(64, 32), mode="RGBA") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new(mode, size, PNG_COLORS[mode]).save(path, "PNG")
    return path


def write_heic(path: Path, size=(64, 32), color=(30, 160, 60), orientation=None, mtime=None) -> Path:
    """Writes a solid-color HEIC through pillow-heif, optionally with EXIF orientation."""
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, color)
    if orientation is not None:
        exif = Image.Exif()
        exif[ORIENTATION_TAG] = orientation
        image.save(path, format="HEIF", exif=exif.tobytes())
    else:
        image.save(path, format="HEIF")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def jpeg_factory():
    """Returns write_jpeg so tests can create images on demand."""
    return write_jpeg


@pytest.fixture
def png_factory():
    return write_png


@pytest.fixture
def heic_factory():
    return write_heic


@pytest.fixture
def nested_media_tree(test_input_dir):
    """Two nested directories with a few small images and one unsupported file.

    input/
      a/photo1.jpg, a/notes.txt
      a/b/photo2.jpg, a/b/photo3.png
    """
    write_jpeg(test_input_dir / "a" / "photo1.jpg", size=(40, 20))
    (test_input_dir / "a" / "notes.txt").write_text("keep me")
    write_jpeg(test_input_dir / "a" / "b" / "photo2.jpg", size=(40, 20))
    write_png(test_input_dir / "a" / "b" / "photo3.png", size=(40, 20))
    return test_input_dir

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (large generated images)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
