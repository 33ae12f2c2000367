"""Worker configuration."""

from cloudsync.worker.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
