"""
Tests for structured logging helpers.
"""
import json
import logging

import pytest

from app.logging_config import REDACTED, StructuredFormatter, StructuredLogger, scrub, timed


class TestScrub:

    def test_masks_credentials(self):
        context = scrub({"api_key": "sk-1", "Authorization": "Bearer x", "job_id": 3})
        assert context == {"api_key": REDACTED, "Authorization": REDACTED, "job_id": 3}


class TestStructuredLogger:

    def test_bound_context_and_redaction(self):
        records = []

        class Capture(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger = StructuredLogger("pulse.test-bound")
        handler = Capture()
        logger.logger.addHandler(handler)
        try:
            logger.bind(job_id=7).info("Calling agent", api_key="sk-secret", attempt=1)
        finally:
            logger.logger.removeHandler(handler)

        line = json.loads(StructuredFormatter().format(records[0]))
        assert line["message"] == "Calling agent"
        assert line["logger"] == "pulse.test-bound"
        assert line["job_id"] == 7
        assert line["attempt"] == 1
        assert line["api_key"] == REDACTED


class TestTimed:

    def test_rejects_sync_functions(self):
        with pytest.raises(TypeError):
            @timed(StructuredLogger("pulse.test-timed"))
            def not_async():
                return None

    @pytest.mark.asyncio
    async def test_passes_result_through(self):
        @timed(StructuredLogger("pulse.test-timed"))
        async def double(x):
            return x * 2

        assert await double(4) == 8
