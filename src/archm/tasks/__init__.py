# src/archm/tasks/__init__.py
"""
Concrete tasks run by the pipeline.

- transfer: ItemTransferTask (move a level-0 item)
- decompress: ArchiveDecompressTask (extract a transferred archive)
"""

from .decompress import ArchiveDecompressTask, extraction_dir_for
from .transfer import ItemTransferTask, is_shortcut

__all__ = ["ArchiveDecompressTask", "ItemTransferTask", "extraction_dir_for", "is_shortcut"]
