"""
Partition discovery for the places refresh.

Classifies the files of the storage directory: the consolidated
allCountries extract, per-country extracts named by a two-letter code,
and everything else (ignored).
"""

import os
import re

from geonames_refresh.core.errors import DiscoveryError
from geonames_refresh.core.models import PartitionKind, SourcePartition
from geonames_refresh.observability.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONSOLIDATED_STEM = "allCountries"
SUPPORTED_EXTENSIONS = (".txt", ".zip")


def classify_partition(
    file_name: str,
    extension: str = ".txt",
    consolidated_stem: str = DEFAULT_CONSOLIDATED_STEM,
) -> PartitionKind | None:
    """
    Classify one file name.

    Args:
        file_name: Bare file name (no directory)
        extension: Extension the partitions carry (".txt" or ".zip")
        consolidated_stem: Stem of the consolidated extract

    Returns:
        PartitionKind, or None when the file is not a source partition

    Examples:
        >>> classify_partition("allCountries.txt")
        <PartitionKind.CONSOLIDATED: 'consolidated'>
        >>> classify_partition("US.txt")
        <PartitionKind.COUNTRY: 'country'>
        >>> classify_partition("README.txt") is None
        True
    """
    if file_name == f"{consolidated_stem}{extension}":
        return PartitionKind.CONSOLIDATED
    if re.fullmatch(r"[A-Z]{2}" + re.escape(extension), file_name):
        return PartitionKind.COUNTRY
    return None


def discover_partitions(
    directory: str,
    extension: str = ".txt",
    consolidated_stem: str = DEFAULT_CONSOLIDATED_STEM,
) -> list[SourcePartition]:
    """
    List the source partitions found directly inside ``directory``.

    Subdirectories are not traversed. Partitions come back sorted by name so
    the merge order is stable across runs.

    Raises:
        DiscoveryError: If the directory cannot be read
        ValueError: If the extension is not supported
    """
    if extension not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported partition extension: {extension}")

    try:
        entries = sorted(os.scandir(directory), key=lambda entry: entry.name)
    except OSError as e:
        raise DiscoveryError(f"Unable to read storage directory {directory}: {e}") from e

    partitions = []
    for entry in entries:
        try:
            if not entry.is_file():
                continue
            kind = classify_partition(entry.name, extension, consolidated_stem)
            if kind is None:
                continue
            size = entry.stat().st_size
        except OSError as e:
            raise DiscoveryError(f"Unable to inspect {entry.path}: {e}") from e

        partitions.append(
            SourcePartition(
                name=entry.name,
                kind=kind,
                path=os.path.abspath(entry.path),
                size_bytes=size,
            )
        )

    logger.info(
        f"Discovered {len(partitions)} partitions in {directory}",
        extra={"directory": directory, "extension": extension},
    )
    return partitions
