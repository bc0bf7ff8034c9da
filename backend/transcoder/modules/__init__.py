"""Feature modules.

- dispatcher: drains the notification queue and launches transcode jobs
- transcoding: the worker side, one rendition pipeline per resolution
- jobs: job parameters shared by both sides and the job status store
"""
