"""Error taxonomy shared by the dispatcher and the worker."""

from typing import Optional


class TranscoderError(Exception):
    """Base exception for dispatcher and worker errors."""
    pass


class MalformedPayload(TranscoderError):
    """Queue message body is not a recognised notification."""
    pass


class LaunchRejected(TranscoderError):
    """The task execution service refused to start a worker."""

    def __init__(self, message: str, bucket: str = "", key: str = ""):
        super().__init__(message)
        self.bucket = bucket
        self.key = key


class FetchFailed(TranscoderError):
    """The source object could not be downloaded. Fatal to the job."""

    def __init__(self, message: str, bucket: str = "", key: str = ""):
        super().__init__(message)
        self.bucket = bucket
        self.key = key


class EncodeFailed(TranscoderError):
    """The encoder failed for one rendition."""

    def __init__(self, message: str, resolution: str = "", stderr: Optional[str] = None):
        super().__init__(message)
        self.resolution = resolution
        self.stderr = stderr


class RenditionTimeout(EncodeFailed):
    """A rendition did not finish before its deadline."""
    pass


class UploadFailed(TranscoderError):
    """A rendition output could not be stored in the destination bucket."""

    def __init__(self, message: str, bucket: str = "", key: str = ""):
        super().__init__(message)
        self.bucket = bucket
        self.key = key
