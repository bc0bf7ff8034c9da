"""Dispatcher.

Drains the storage notification queue, decodes each message and launches one
isolated transcode task per storage-change record.
"""
