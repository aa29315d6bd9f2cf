import logging
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "batchmedia.log"


def setup_logging(output_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for BatchMedia.

    Creates the output directory and the batchmedia.log file.
    Returns configured logger instance.

    Args:
        output_dir: Root of the mirrored output tree
        debug: If True, enable DEBUG level logging (ffmpeg command lines, per-file timings)
        log_path: Optional path to log file (overrides output_dir)
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    log_file = Path(log_path) if log_path else (output_dir / LOG_FILE_NAME)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - [%(threadName)s] %(name)s: %(message)s',
        handlers=[logging.FileHandler(log_file)],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
