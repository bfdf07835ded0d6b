"""Tests for carbon_collector.collection.evidence."""

from __future__ import annotations

import base64
import hashlib

from carbon_collector.collection.evidence import EvidenceCollector, payload_sha256


class _Page:
    def __init__(self, png: bytes = b"\x89PNG fake", fail: bool = False) -> None:
        self._png = png
        self._fail = fail

    async def screenshot(self, *, full_page: bool = False) -> bytes:
        assert full_page is True
        if self._fail:
            raise RuntimeError("page crashed")
        return self._png


class TestPayloadHash:
    def test_str_and_bytes_agree(self):
        assert payload_sha256("abc") == payload_sha256(b"abc")
        assert payload_sha256(b"abc") == hashlib.sha256(b"abc").hexdigest()


class TestEvidenceCollector:
    async def test_capture_screenshot(self):
        collector = EvidenceCollector()
        encoded = await collector.capture_screenshot(_Page(), "CEA CNEEEX", "http://x")
        assert base64.b64decode(encoded) == b"\x89PNG fake"
        item = collector.items[0]
        assert item.success is True
        assert item.data is None
        assert item.sha256 == payload_sha256(b"\x89PNG fake")

    async def test_capture_failure_recorded_not_raised(self):
        collector = EvidenceCollector()
        result = await collector.capture_screenshot(_Page(fail=True), "CEA CNEEEX")
        assert result is None
        assert len(collector) == 1
        assert collector.items[0].success is False
        assert collector.items[0].error == "page crashed"

    def test_record_response_json(self):
        collector = EvidenceCollector()
        item = collector.record_response(
            "CDR.fyi Prices API", "https://cdr.fyi/api/v1/prices",
            {"success": True, "data": []}, record_count=0,
        )
        assert item.data == '{"success": true, "data": []}'
        assert item.details == {"content_length": len(item.data), "record_count": 0}

    def test_record_response_excerpt(self):
        collector = EvidenceCollector(excerpt_chars=10)
        text = "x" * 50
        item = collector.record_response("CARB", None, text)
        assert item.data == "x" * 10
        assert item.details["content_length"] == 50
        # Hash covers the full payload, not the excerpt
        assert item.sha256 == payload_sha256(text)

    def test_record_failure_from_exception(self):
        collector = EvidenceCollector()
        item = collector.record_failure("CARB", "https://arb", TimeoutError())
        assert item.error == "TimeoutError"
        assert item.success is False

    def test_items_is_a_copy(self):
        collector = EvidenceCollector()
        collector.record_failure("a", None, "boom")
        collector.items.clear()
        assert len(collector) == 1
        collector.clear()
        assert len(collector) == 0
