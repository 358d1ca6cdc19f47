from torchdivergence.pad._replication_pad import (
    replication_pad,
    replication_pad_backward,
)

__all__ = [
    "replication_pad",
    "replication_pad_backward",
]
