"""Source control binding removal for retrieved files."""

from .sanitizer import WorkingTreeSanitizer

__all__ = ['WorkingTreeSanitizer']
