import logging

from batchmedia.domain.models import FileRecord, RecordKind, WorkItem
from batchmedia.infrastructure.file_ops import copy_preserving_mtime


class CopyPipeline:
    """Byte-for-byte copy for files no other pipeline handles."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def process(self, item: WorkItem) -> FileRecord:
        output_size = copy_preserving_mtime(item.source, item.output)
        self.logger.info(f"Copied: {item.source} -> {item.output} ({output_size} bytes)")
        return FileRecord.build(
            path=item.relative_path,
            kind=RecordKind.COPIED,
            input_size=item.size_bytes,
            output_size=output_size,
        )
