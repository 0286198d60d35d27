"""Tool adapters for external utilities."""
from .ffprobe import FFProbe, VideoProbe

__all__ = ["FFProbe", "VideoProbe"]
