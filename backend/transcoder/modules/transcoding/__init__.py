"""Transcoding worker.

Fetches one source object, fans out one FFmpeg rendition pipeline per
configured resolution and joins their results.
"""
