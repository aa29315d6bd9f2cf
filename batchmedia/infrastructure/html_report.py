import html
import logging
from pathlib import Path, PurePosixPath

from batchmedia.domain.events import DirectoryCompleted
from batchmedia.domain.models import DirectoryStats, FileRecord, RecordKind
from batchmedia.infrastructure.event_bus import EventBus

REPORT_FILE_NAME = "processing_report.html"
IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".heic"}

_STYLE = """
        body { font-family: Arial, sans-serif; margin: 20px; background-color: #f5f5f5; }
        .container { max-width: 1400px; margin: 0 auto; background: white; padding: 20px; border-radius: 8px; }
        h1, h2 { color: #333; }
        h1 { text-align: center; }
        .summary { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 15px; margin: 20px 0; }
        .stat-card { background: #f8f9fa; padding: 15px; border-radius: 5px; text-align: center; }
        .stat-number { font-size: 24px; font-weight: bold; color: #007bff; }
        .stat-label { color: #666; margin-top: 5px; }
        .files-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(300px, 1fr)); gap: 20px; }
        .file-card { border: 1px solid #ddd; border-radius: 8px; padding: 15px; }
        .file-header { display: flex; align-items: center; margin-bottom: 10px; }
        .file-name { font-weight: bold; color: #333; text-decoration: none; flex: 1; }
        .file-type { padding: 3px 8px; border-radius: 12px; font-size: 12px; font-weight: bold; text-transform: uppercase; }
        .processed { background: #d4edda; color: #155724; }
        .video_processed { background: #d1ecf1; color: #0c5460; }
        .copied { background: #fff3cd; color: #856404; }
        .skipped { background: #f8d7da; color: #721c24; }
        .thumbnail { width: 100%; height: 200px; object-fit: cover; border-radius: 5px; margin: 10px 0; background: #f8f9fa; }
        .detail-row { display: flex; justify-content: space-between; margin: 5px 0; font-size: 14px; color: #666; }
        .compression-ratio { font-weight: bold; color: #28a745; }
"""


def _mb(size: int) -> float:
    return size / 1024 / 1024


def _output_name(record: FileRecord) -> str:
    """Name of the produced file, relative to the report in the same directory."""
    name = PurePosixPath(record.path.replace("\\", "/")).name
    if name.lower().endswith(".heic") and record.kind == RecordKind.PROCESSED:
        return name[:-len(".heic")] + ".jpg"
    return name


def _file_card(record: FileRecord) -> str:
    link = html.escape(_output_name(record))
    label = html.escape(record.path)
    kind = html.escape(record.kind.value)
    is_image = PurePosixPath(_output_name(record)).suffix.lower() in IMAGE_SUFFIXES
    preview = f'<img src="{link}" alt="{link}" class="thumbnail">' if is_image else ""

    rows = [
        f'<div class="detail-row"><span>Original Size:</span><span>{record.input_size / 1024:.1f} KB</span></div>',
        f'<div class="detail-row"><span>Output Size:</span><span>{record.output_size / 1024:.1f} KB</span></div>',
    ]
    if record.original_size and record.new_size:
        rows.append(
            '<div class="detail-row"><span>Dimensions:</span>'
            f"<span>{record.original_size[0]}x{record.original_size[1]} &rarr; "
            f"{record.new_size[0]}x{record.new_size[1]}</span></div>"
        )
    rows.append(
        '<div class="detail-row"><span>Compression Ratio:</span>'
        f'<span class="compression-ratio">{record.compression_ratio:.2f}</span></div>'
    )

    return (
        '            <div class="file-card">\n'
        '                <div class="file-header">'
        f'<a href="{link}" class="file-name" target="_blank">{label}</a>'
        f'<span class="file-type {kind}">{kind}</span></div>\n'
        f"                {preview}\n"
        + "".join(f"                {row}\n" for row in rows)
        + "            </div>\n"
    )


def render_directory_report(stats: DirectoryStats) -> str:
    title = html.escape(f"Directory: {stats.directory}")
    cards = [
        (stats.total_files, "Total Files"),
        (stats.processed_images, "Processed Images"),
        (stats.copied_files, "Copied Files"),
        (stats.skipped_images, "Skipped Images"),
        (f"{_mb(stats.total_input_size):.1f} MB", "Input Size"),
        (f"{_mb(stats.total_output_size):.1f} MB", "Output Size"),
        (f"{stats.space_saved_percent:.1f}%", "Space Saved"),
    ]
    summary = "".join(
        f'            <div class="stat-card"><div class="stat-number">{value}</div>'
        f'<div class="stat-label">{label}</div></div>\n'
        for value, label in cards
    )
    files = "".join(_file_card(record) for record in stats.files)

    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n<head>\n'
        '    <meta charset="UTF-8">\n'
        f"    <title>{title} - Processing Report</title>\n"
        f"    <style>{_STYLE}    </style>\n"
        "</head>\n<body>\n"
        '    <div class="container">\n'
        f"        <h1>{title}</h1>\n"
        f'        <div class="summary">\n{summary}        </div>\n'
        "        <h2>Processed Files</h2>\n"
        f'        <div class="files-grid">\n{files}        </div>\n'
        "    </div>\n</body>\n</html>\n"
    )


class HtmlReportWriter:
    """Writes processing_report.html into each finished directory's output mirror."""

    def __init__(self, output_dir: Path, enabled: bool = True):
        self.output_dir = output_dir
        self.enabled = enabled
        self.logger = logging.getLogger(__name__)

    def attach(self, event_bus: EventBus) -> None:
        event_bus.subscribe(DirectoryCompleted, self.on_directory_completed)

    def report_path(self, relative_dir: str) -> Path:
        if relative_dir in ("", "."):
            return self.output_dir / REPORT_FILE_NAME
        return self.output_dir / relative_dir / REPORT_FILE_NAME

    def write(self, stats: DirectoryStats) -> Path:
        path = self.report_path(stats.directory)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_directory_report(stats), encoding="utf-8")
        return path

    def on_directory_completed(self, event: DirectoryCompleted) -> None:
        if not self.enabled or event.dry_run:
            return
        try:
            path = self.write(event.stats)
            self.logger.info(f"HTML report written: {path}")
        except OSError as exc:
            self.logger.warning(f"Failed to generate HTML report for directory '{event.stats.directory}': {exc}")
