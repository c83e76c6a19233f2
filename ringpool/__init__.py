"""Ring buffers, buffer pools, a worker pool and event-loop scaffolding."""

__version__ = "0.1.0"
__all__ = ["bytebuffer", "ring_buffer", "workers", "pool", "reactor", "server"]