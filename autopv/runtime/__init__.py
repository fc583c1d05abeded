"""autopv.runtime — memory tracking and cooperative batch processing."""

from autopv.runtime.resource_monitor import ResourceMonitor
from autopv.runtime.chunk_processor import ChunkProcessor
from autopv.runtime.buffer import DataBuffer

__all__ = ["ResourceMonitor", "ChunkProcessor", "DataBuffer"]
