"""Tests for the JSON log formatter and correlation ids."""

import json
import logging
import sys

from transcoder.core.logging import (
    StructuredFormatter,
    clear_correlation_id,
    set_correlation_id,
)


def make_record(message: str, exc_info=None, **extra) -> logging.LogRecord:
    return logging.getLogger("transcoder.test").makeRecord(
        "transcoder.test", logging.INFO, __file__, 10, message, (), exc_info, extra=extra,
    )


class TestStructuredFormatter:

    def teardown_method(self):
        clear_correlation_id()

    def test_extra_fields_are_always_emitted(self):
        record = make_record("Uploaded video-360p.mp4", resolution="360p", file_size=2048)

        payload = json.loads(StructuredFormatter().format(record))

        assert payload["message"] == "Uploaded video-360p.mp4"
        assert payload["extra"] == {"resolution": "360p", "file_size": 2048}

    def test_unserializable_extra_is_stringified(self):
        record = make_record("Job started", resolutions={"360p"})

        payload = json.loads(StructuredFormatter().format(record))

        assert payload["extra"]["resolutions"] == "{'360p'}"

    def test_correlation_id_from_context(self):
        set_correlation_id("raw-uploads/clip42.mp4")

        payload = json.loads(StructuredFormatter().format(make_record("Job started")))

        assert payload["correlation_id"] == "raw-uploads/clip42.mp4"
        assert "extra" not in payload

    def test_stack_trace_can_be_left_out(self):
        try:
            raise RuntimeError("ffmpeg vanished")
        except RuntimeError:
            exc_info = sys.exc_info()

        record = make_record("Rendition failed", exc_info=exc_info)

        with_trace = json.loads(StructuredFormatter().format(record))
        without_trace = json.loads(StructuredFormatter(include_stack_trace=False).format(record))

        assert with_trace["exception"]["type"] == "RuntimeError"
        assert "exception" not in without_trace
