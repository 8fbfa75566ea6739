"""
Master extract builder.

Turns the discovered partitions into the single file the bulk loader reads:
either by moving the consolidated extract into place, or by streaming every
country partition into a fresh master file.
"""

import os

from geonames_refresh.core.errors import MergeError
from geonames_refresh.core.models import MasterExtract, SourcePartition
from geonames_refresh.core.progress import ProgressCallback, report_progress
from geonames_refresh.observability import metrics
from geonames_refresh.observability.logger import get_logger

logger = get_logger(__name__)


def count_lines(path: str, chunk_size: int = 1 << 20) -> int:
    """Count newline-terminated lines (plus a trailing unterminated one)."""
    lines = 0
    last = b"\n"
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            lines += chunk.count(b"\n")
            last = chunk[-1:]
    if last != b"\n":
        lines += 1
    return lines


class MasterExtractBuilder:
    """
    Builds the master extract in the storage directory.
    """

    def __init__(
        self,
        storage_dir: str,
        master_file_name: str = "master.txt",
        progress: ProgressCallback | None = None,
        chunk_size: int = 1 << 20,
        count_consolidated_lines: bool = True,
    ):
        """
        Initialize the builder.

        Args:
            storage_dir: Directory holding the partitions; the master is written here
            master_file_name: File name of the master extract
            progress: Optional (fraction_done, message) callback
            chunk_size: Bytes between progress reports while merging
            count_consolidated_lines: Count lines after the fast-path move (reporting only)
        """
        self.storage_dir = storage_dir
        self.master_path = os.path.abspath(os.path.join(storage_dir, master_file_name))
        self.progress = progress
        self.chunk_size = chunk_size
        self.count_consolidated_lines = count_consolidated_lines

    def build(self, partitions: list[SourcePartition]) -> MasterExtract:
        """
        Produce the master extract from the given partitions.

        Args:
            partitions: Partitions in discovery order

        Returns:
            MasterExtract with path, line count and byte count

        Raises:
            MergeError: If there is nothing to merge or any file operation fails
        """
        if not partitions:
            raise MergeError(f"No source partitions to merge in {self.storage_dir}")

        consolidated = next((p for p in partitions if p.is_consolidated), None)
        if consolidated is not None:
            ignored = len(partitions) - 1
            if ignored:
                logger.info(
                    f"Consolidated extract present, ignoring {ignored} country partitions",
                    extra={"partition": consolidated.name},
                )
            extract = self._move_consolidated(consolidated)
        else:
            extract = self._merge(partitions)

        metrics.set_gauge(metrics.master_extract_lines, extract.line_count)
        logger.info(
            f"Master extract ready: {extract.line_count} lines, {extract.byte_count} bytes",
            extra={"path": extract.path, "fast_path": extract.fast_path},
        )
        return extract

    def _move_consolidated(self, partition: SourcePartition) -> MasterExtract:
        try:
            os.replace(partition.path, self.master_path)
        except OSError as e:
            raise MergeError(
                f"Unable to move the consolidated extract to {self.master_path}: {e}",
                partition=partition.name,
            ) from e

        report_progress(self.progress, 1.0, partition.name)

        try:
            byte_count = os.path.getsize(self.master_path)
            line_count = count_lines(self.master_path) if self.count_consolidated_lines else 0
        except OSError as e:
            raise MergeError(f"Unable to inspect master extract {self.master_path}: {e}") from e

        return MasterExtract(
            path=self.master_path,
            line_count=line_count,
            byte_count=byte_count,
            fast_path=True,
        )

    def _merge(self, partitions: list[SourcePartition]) -> MasterExtract:
        line_count = 0
        byte_count = 0

        try:
            master = open(self.master_path, "wb")
        except OSError as e:
            raise MergeError(f"Unable to create master extract {self.master_path}: {e}") from e

        try:
            for partition in partitions:
                lines, written = self._append_partition(master, partition)
                line_count += lines
                byte_count += written
        except BaseException:
            master.close()
            raise

        try:
            master.close()
        except OSError as e:
            raise MergeError(f"Unable to close master extract {self.master_path}: {e}") from e

        return MasterExtract(path=self.master_path, line_count=line_count, byte_count=byte_count)

    def _append_partition(self, master, partition: SourcePartition) -> tuple[int, int]:
        """Stream one partition into the open master file; returns (lines, bytes)."""
        logger.info(f"Combining {partition.path}", extra={"partition": partition.name})
        size = partition.size_bytes or 1
        lines = 0
        written = 0
        since_report = 0

        try:
            with open(partition.path, "rb") as source:
                for line in source:
                    if not line.endswith(b"\n"):
                        line += b"\n"
                    master.write(line)
                    lines += 1
                    written += len(line)
                    since_report += len(line)
                    if since_report >= self.chunk_size:
                        report_progress(self.progress, written / size, partition.name)
                        since_report = 0
        except OSError as e:
            raise MergeError(f"Unable to copy partition into master extract: {e}", partition=partition.name) from e

        report_progress(self.progress, 1.0, partition.name)
        return lines, written
