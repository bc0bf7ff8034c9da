"""S3 Video Transcoder.

Turns "a video file landed in object storage" into "N resolution renditions
exist in destination storage".

Modules:
    - core: Configuration, logging, errors, AWS clients, object storage, database
    - modules.dispatcher: SQS notification decoding, ECS job launch, polling loop
    - modules.transcoding: Source fetch, FFmpeg rendition pipelines, worker fan-out/join
    - modules.jobs: Job parameters and job status store
"""

__version__ = "0.1.0"
