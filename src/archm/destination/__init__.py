"""
Destination layout: date buckets and P# partitions.
"""

from .partitions import PartitionAllocator, find_starting_partition_index, partition_name
from .resolver import (
    BucketStrategy,
    CreationDateStrategy,
    DestinationResolver,
    LastModifiedDateStrategy,
    TransferDateStrategy,
    bucket_name,
    strategy_for,
)

__all__ = [
    "BucketStrategy",
    "CreationDateStrategy",
    "DestinationResolver",
    "LastModifiedDateStrategy",
    "PartitionAllocator",
    "TransferDateStrategy",
    "bucket_name",
    "find_starting_partition_index",
    "partition_name",
    "strategy_for",
]
