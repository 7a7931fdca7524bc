"""Configuration models describing Prune settings."""

from __future__ import annotations

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PruneBaseModel(BaseModel):
    """Shared configuration for Prune settings models."""

    model_config = ConfigDict(extra="forbid")


class LibrarySettings(PruneBaseModel):
    """Location and scanning behavior of the folder-backed photo library.

    Attributes:
        root: Directory holding the photo library; ``None`` uses the current directory.
        state_dirname: Name of the per-library state directory (favorites).
        use_file_times: Fall back to file modification times when EXIF data is missing.
        recents_days: Age limit, in days, for the Recents collection.
        watch_debounce_seconds: Quiet period before filesystem events trigger a rebuild.
        follow_symlinks: Whether to traverse symbolic links while scanning.
    """

    root: Optional[str] = None
    state_dirname: str = ".prune"
    use_file_times: bool = True
    recents_days: int = Field(default=30, ge=0)
    watch_debounce_seconds: float = Field(default=0.5, ge=0)
    follow_symlinks: bool = False


class DecisionSettings(PruneBaseModel):
    """Where review decisions are persisted.

    Photo ids are only unique inside one library, so by default each library
    keeps its own decision file next to its other state.

    Attributes:
        path: Explicit decision file; ``None`` uses
            ``<library root>/<state_dirname>/decisions.json``.
    """

    path: Optional[str] = None


class ReconcileSettings(PruneBaseModel):
    """Index rebuild and reconciliation behavior.

    Attributes:
        prune_after_rebuild: Drop decisions for vanished photos after every rebuild.
        worker_threads: Size of the pool that runs library queries.
    """

    prune_after_rebuild: bool = True
    worker_threads: int = Field(default=2, ge=1)


class ImageSettings(PruneBaseModel):
    """Default request sizes for image delivery.

    Attributes:
        thumbnail_size: Edge length, in pixels, of grid thumbnails.
        high_quality_size: Edge length, in pixels, of full-screen images.
    """

    thumbnail_size: int = Field(default=320, gt=0)
    high_quality_size: int = Field(default=2000, gt=0)

    @property
    def thumbnail_box(self) -> Tuple[int, int]:
        return (self.thumbnail_size, self.thumbnail_size)

    @property
    def high_quality_box(self) -> Tuple[int, int]:
        return (self.high_quality_size, self.high_quality_size)


class LoggingSettings(PruneBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file; enables size-based rotation.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown logging level: {value}")
        return level


class CLIOptions(PruneBaseModel):
    """CLI behavior defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
    """

    quiet_default: bool = False


class PruneConfig(PruneBaseModel):
    """Top-level configuration struct for Prune."""

    library: LibrarySettings = Field(default_factory=LibrarySettings)
    decisions: DecisionSettings = Field(default_factory=DecisionSettings)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)
    images: ImageSettings = Field(default_factory=ImageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "PruneBaseModel",
    "LibrarySettings",
    "DecisionSettings",
    "ReconcileSettings",
    "ImageSettings",
    "LoggingSettings",
    "CLIOptions",
    "PruneConfig",
]
