"""Resolution-threshold skip decision shared by the image and video pipelines."""

from batchmedia.config.models import RunConfig, ScalingDirection
from batchmedia.domain.models import Dimensions


class ThresholdPolicy:
    """Decides whether a file is transformed or copied through untouched.

    Downscaling skips files already smaller than the threshold on either
    axis; upscaling skips files already larger. Thresholds left at 0 are
    filled with smart defaults unless those are disabled, and a threshold
    still at 0 disables its axis.
    """

    def __init__(self, config: RunConfig):
        self.direction = config.scaling_direction()
        self.threshold_width, self.threshold_height = config.effective_thresholds()

    def should_skip(self, width: int, height: int) -> bool:
        if self.direction == ScalingDirection.UP:
            return (
                (self.threshold_width > 0 and width > self.threshold_width)
                or (self.threshold_height > 0 and height > self.threshold_height)
            )
        if self.direction == ScalingDirection.DOWN:
            return (
                (self.threshold_width > 0 and width < self.threshold_width)
                or (self.threshold_height > 0 and height < self.threshold_height)
            )
        return False


def compute_target_size(width: int, height: int, config: RunConfig) -> Dimensions:
    """Width mode keeps the aspect ratio; ratio mode scales both axes. Never below 1px."""
    if config.width > 0 and width > 0:
        new_width = config.width
        new_height = round(height * config.width / width)
    elif config.scaling_ratio > 0:
        new_width = round(width * config.scaling_ratio)
        new_height = round(height * config.scaling_ratio)
    else:
        new_width, new_height = width, height
    return max(1, new_width), max(1, new_height)
