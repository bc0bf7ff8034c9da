"""Job parameters: the contract between dispatcher and worker."""

from pydantic import BaseModel, ConfigDict, Field

BUCKET_ENV = "BUCKET_NAME"
KEY_ENV = "KEY"


class JobParameters(BaseModel):
    """Source object for one transcode job."""
    model_config = ConfigDict(frozen=True)

    bucket: str = Field(..., min_length=1, description="Source bucket name")
    key: str = Field(..., min_length=1, description="Source object key")

    def to_environment(self) -> list[dict[str, str]]:
        """Container environment overrides for the worker task."""
        return [
            {"name": BUCKET_ENV, "value": self.bucket},
            {"name": KEY_ENV, "value": self.key},
        ]

    def __str__(self) -> str:
        return f"{self.bucket}/{self.key}"
