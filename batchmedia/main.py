import typer
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console

from batchmedia.config.loader import load_config, build_run_config
from batchmedia.config.models import RunConfig
from batchmedia.domain.errors import BatchMediaError, ConfigError
from batchmedia.infrastructure.logging import setup_logging
from batchmedia.infrastructure.event_bus import EventBus
from batchmedia.infrastructure.html_report import HtmlReportWriter
from batchmedia.pipeline.orchestrator import Orchestrator
from batchmedia.ui.console import ConsoleReporter

app = typer.Typer(help="BatchMedia - resumable batch conversion of photo and video trees")


def _flag(value: bool) -> Optional[bool]:
    # Unset flags must not override values from the config file
    return True if value else None


def _describe(config: RunConfig) -> str:
    if config.scaling_ratio:
        scaling = f"ratio={config.scaling_ratio}"
    elif config.width:
        scaling = f"width={config.width}"
    else:
        scaling = "none"
    threshold_width, threshold_height = config.effective_thresholds()
    return (
        f"scaling={scaling}, thresholds={threshold_width}x{threshold_height}, "
        f"ignore_smart_limit={config.ignore_smart_limit}, extensions={config.extensions or 'all'}, "
        f"workers={config.workers}, dry_run={config.dry_run}, video_disabled={config.video.disabled}, "
        f"codec={config.video.codec}, crf={config.video.crf}, bitrate={config.video.bitrate}, "
        f"preset={config.video.preset}, resolution={config.video.resolution}"
    )


@app.command()
def convert(
    input_dir: Optional[Path] = typer.Argument(None, help="Input directory (optional if set in config)"),
    output_dir: Optional[Path] = typer.Option(None, "--out", "-o", help="Output directory"),
    size: Optional[float] = typer.Option(None, "--size", help="Scaling ratio, e.g. 0.5 scales to 50%"),
    width: Optional[int] = typer.Option(None, "--width", help="Target width in pixels"),
    threshold_width: Optional[int] = typer.Option(
        None, "--threshold-width", help="Width threshold (default: 1920 downscaling, 3840 upscaling)"
    ),
    threshold_height: Optional[int] = typer.Option(
        None, "--threshold-height", help="Height threshold (default: 1080 downscaling, 2160 upscaling)"
    ),
    ignore_smart_limit: bool = typer.Option(False, "--ignore-smart-limit", help="Do not apply default thresholds"),
    ext: Optional[str] = typer.Option(None, "--ext", help="Only process these extensions, e.g. heic,jpg,png"),
    dry_run: bool = typer.Option(False, "--dry-run", "--fake-scan", help="List what would be done, write nothing"),
    disable_video: bool = typer.Option(False, "--disable-video", help="Copy videos instead of transcoding"),
    video_codec: Optional[str] = typer.Option(None, "--video-codec", help="Video codec (default: libx265)"),
    video_bitrate: Optional[str] = typer.Option(None, "--video-bitrate", help="Video bitrate, e.g. 2M (replaces CRF)"),
    video_resolution: Optional[str] = typer.Option(None, "--video-resolution", help="Video resolution, e.g. 1280x720"),
    video_crf: Optional[int] = typer.Option(None, "--video-crf", help="Video CRF 0-51 (default: 23)"),
    video_preset: Optional[str] = typer.Option(None, "--video-preset", help="Encoder preset (default: medium)"),
    multithread: Optional[int] = typer.Option(
        None, "--multithread", "-t", help="Directories processed concurrently (default: 1)"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    reset_progress: bool = typer.Option(False, "--reset-progress", help="Delete the progress file and rescan"),
    debug: Optional[bool] = typer.Option(
        None, "--debug/--no-debug", help="Enable verbose debug logging (default: from config, else off)"
    ),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file"),
):
    """Convert every photo and video below INPUT_DIR into a mirrored output tree."""
    overrides: Dict[str, Any] = {
        "input_dir": input_dir,
        "output_dir": output_dir,
        "scaling_ratio": size,
        "width": width,
        "threshold_width": threshold_width,
        "threshold_height": threshold_height,
        "ignore_smart_limit": _flag(ignore_smart_limit),
        "extensions": ext,
        "dry_run": _flag(dry_run),
        "workers": multithread,
        "debug": debug,
        "log_path": log_path,
        "video": {
            "disabled": _flag(disable_video),
            "codec": video_codec,
            "bitrate": video_bitrate,
            "resolution": video_resolution,
            "crf": video_crf,
            "preset": video_preset,
        },
    }

    try:
        file_values = load_config(config_path) if config_path else {}
        config = build_run_config(overrides, file_values)
    except (ConfigError, FileNotFoundError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    logger = logging.getLogger(__name__)
    try:
        logger = setup_logging(config.output_dir, debug=config.debug, log_path=config.log_path)
        logger.info(f"BatchMedia started: input={config.input_dir}, output={config.output_dir}")
        logger.info(f"Config: {_describe(config)}")

        bus = EventBus()
        ConsoleReporter(bus, Console())
        HtmlReportWriter(config.output_dir, enabled=not config.extensions).attach(bus)
        if config.extensions:
            logger.info(f"Skipping HTML report generation (extension filter active: {','.join(config.extensions)})")

        orchestrator = Orchestrator(config=config, event_bus=bus)
        orchestrator.run(reset_progress=reset_progress)

    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        typer.secho("\nStopped by user (Ctrl+C). Completed directories are kept; rerun to resume.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except BatchMediaError as e:
        logger.error(f"Fatal: {e}")
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    except Exception as e:
        logger.exception("Fatal error")
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
