import re
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DOWNSCALE_THRESHOLDS: Tuple[int, int] = (1920, 1080)
UPSCALE_THRESHOLDS: Tuple[int, int] = (3840, 2160)
# Target widths up to this value are treated as downscaling when picking smart defaults.
WIDTH_DIRECTION_CUTOFF = 1920

_RESOLUTION_RE = re.compile(r"^-?\d+[x:]-?\d+$")
_BITRATE_RE = re.compile(r"^\d+(\.\d+)?[kKmMgG]?$")


class ScalingDirection(str, Enum):
    DOWN = "down"
    UP = "up"
    NONE = "none"


def normalize_extensions(value) -> List[str]:
    """Accepts 'heic, .JPG' or ['heic', '.JPG'] and returns ['heic', 'jpg']."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    normalized: List[str] = []
    for item in value:
        ext = str(item).strip().lower().lstrip(".")
        if ext and ext not in normalized:
            normalized.append(ext)
    return normalized


class VideoConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    disabled: bool = False
    codec: str = "libx265"
    bitrate: Optional[str] = None
    resolution: Optional[str] = None
    crf: int = Field(default=23, ge=0, le=51)
    preset: str = "medium"

    @field_validator("bitrate", "resolution", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("resolution")
    @classmethod
    def validate_resolution(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _RESOLUTION_RE.match(v):
            raise ValueError(f"Invalid video resolution '{v}'. Use WIDTHxHEIGHT, e.g. 1920x1080.")
        return v

    @field_validator("bitrate")
    @classmethod
    def validate_bitrate(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _BITRATE_RE.match(v):
            raise ValueError(f"Invalid video bitrate '{v}'. Use a value like 2M or 1000k.")
        return v


class RunConfig(BaseModel):
    """Immutable settings for one run, built once at startup."""

    model_config = ConfigDict(frozen=True)

    input_dir: Path
    output_dir: Path
    scaling_ratio: float = Field(default=0.0, ge=0.0, le=10.0)
    width: int = Field(default=0, ge=0)
    threshold_width: int = Field(default=0, ge=0)
    threshold_height: int = Field(default=0, ge=0)
    ignore_smart_limit: bool = False
    extensions: List[str] = Field(default_factory=list)
    dry_run: bool = False
    workers: int = Field(default=1, ge=1)
    debug: bool = False
    log_path: Optional[Path] = None
    video: VideoConfig = Field(default_factory=VideoConfig)

    @field_validator("extensions", mode="before")
    @classmethod
    def validate_extensions(cls, v) -> List[str]:
        return normalize_extensions(v)

    @model_validator(mode="after")
    def validate_scaling(self):
        if self.scaling_ratio and self.width:
            raise ValueError("--size and --width cannot be used simultaneously")
        if not self.dry_run and not self.scaling_ratio and not self.width:
            raise ValueError("must specify either --size or --width")
        return self

    def scaling_direction(self) -> ScalingDirection:
        """Direction used by the threshold policy.

        Width mode leaves the ratio at 0 and therefore skips like a downscale.
        """
        if self.scaling_ratio > 1.0:
            return ScalingDirection.UP
        if self.scaling_ratio < 1.0:
            return ScalingDirection.DOWN
        return ScalingDirection.NONE

    def smart_default_direction(self) -> ScalingDirection:
        if self.scaling_ratio > 0:
            if self.scaling_ratio < 1.0:
                return ScalingDirection.DOWN
            if self.scaling_ratio > 1.0:
                return ScalingDirection.UP
            return ScalingDirection.NONE
        if self.width > 0:
            if self.width <= WIDTH_DIRECTION_CUTOFF:
                return ScalingDirection.DOWN
            return ScalingDirection.UP
        return ScalingDirection.NONE

    def effective_thresholds(self) -> Tuple[int, int]:
        """Thresholds after smart defaults; 0 disables an axis."""
        width, height = self.threshold_width, self.threshold_height
        if self.ignore_smart_limit:
            return width, height
        direction = self.smart_default_direction()
        if direction == ScalingDirection.DOWN:
            defaults = DOWNSCALE_THRESHOLDS
        elif direction == ScalingDirection.UP:
            defaults = UPSCALE_THRESHOLDS
        else:
            return width, height
        return width or defaults[0], height or defaults[1]

    @property
    def progress_file_name(self) -> str:
        if not self.extensions:
            return "progress.json"
        return f"progress_{'_'.join(self.extensions)}.json"

    @property
    def progress_file(self) -> Path:
        return self.output_dir / self.progress_file_name
