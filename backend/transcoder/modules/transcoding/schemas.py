"""Schemas for the transcoding worker.

Resolutions are configuration; rendition results and job outcomes are the
values produced by the fan-out/join.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Resolution(BaseModel):
    """One target rendition size."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Rendition name, e.g. 360p")
    width: int = Field(..., gt=0, description="Output width in pixels")
    height: int = Field(..., gt=0, description="Output height in pixels")

    @property
    def size(self) -> str:
        """FFmpeg size argument (WxH)."""
        return f"{self.width}x{self.height}"


DEFAULT_RESOLUTIONS = [
    Resolution(name="360p", width=480, height=360),
    Resolution(name="480p", width=858, height=480),
    Resolution(name="720p", width=1280, height=720),
]


def validate_resolution_set(resolutions: list[Resolution]) -> list[Resolution]:
    """Check a resolution set is non-empty and has unique names.

    Args:
        resolutions: Configured resolutions

    Returns:
        The same list, unchanged

    Raises:
        ValueError: If the set is empty or a name repeats
    """
    if not resolutions:
        raise ValueError("at least one resolution must be configured")

    seen: set[str] = set()
    for resolution in resolutions:
        if resolution.name in seen:
            raise ValueError(f"duplicate resolution name: {resolution.name}")
        seen.add(resolution.name)
    return resolutions


def output_name_for(resolution: Resolution, container: str = "mp4") -> str:
    """Derive the output object name for a resolution."""
    return f"video-{resolution.name}.{container}"


class RenditionStatus(str, Enum):
    """Terminal status of one rendition pipeline."""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class LocalHandle:
    """A source object fully materialized in the working area."""
    path: Path
    bucket: str
    key: str
    size: int = 0


@dataclass
class RenditionResult:
    """Result of one rendition pipeline."""
    resolution: Resolution
    output_key: str
    status: RenditionStatus
    error_message: Optional[str] = None
    file_size: int = 0
    etag: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RenditionStatus.SUCCESS


@dataclass
class JobOutcome:
    """Joined outcome of all rendition pipelines for one job."""
    bucket: str
    key: str
    results: list[RenditionResult] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        if self.error_message is not None or not self.results:
            return False
        return all(result.succeeded for result in self.results)

    @property
    def failed_resolutions(self) -> list[str]:
        return [r.resolution.name for r in self.results if not r.succeeded]

    @property
    def uploaded_keys(self) -> list[str]:
        return [r.output_key for r in self.results if r.succeeded]

    def summary(self) -> dict:
        """Loggable summary of the outcome."""
        return {
            "bucket": self.bucket,
            "key": self.key,
            "success": self.success,
            "uploaded": self.uploaded_keys,
            "failed_resolutions": self.failed_resolutions,
            "error": self.error_message,
        }
