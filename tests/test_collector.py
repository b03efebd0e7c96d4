"""Tests for OutputCollector: per-chunk delivery, truncation, close semantics."""
import pytest

from secbox.core.collector import TRUNCATION_MARKER, OutputCollector, StreamDecoder
from secbox.core.models import StreamType


class TestDelivery:
    def test_streams_accumulate_separately(self):
        c = OutputCollector("p1", 100)
        c.feed(StreamType.STDOUT, "out1 ")
        c.feed(StreamType.STDERR, "err")
        c.feed(StreamType.STDOUT, "out2")
        assert c.stdout == "out1 out2"
        assert c.stderr == "err"

    def test_sink_gets_each_chunk_in_order(self):
        seen = []
        c = OutputCollector("p1", 100, seen.append)
        c.feed(StreamType.STDOUT, "a")
        c.feed(StreamType.STDERR, "b")
        c.feed(StreamType.STDOUT, "c\nd")
        assert [(ch.stream, ch.content) for ch in seen] == [
            (StreamType.STDOUT, "a"),
            (StreamType.STDERR, "b"),
            (StreamType.STDOUT, "c\nd"),
        ]
        assert all(ch.process_id == "p1" for ch in seen)

    def test_empty_chunk_ignored(self):
        seen = []
        c = OutputCollector("p1", 100, seen.append)
        c.feed(StreamType.STDOUT, "")
        assert seen == []

    def test_sink_error_does_not_stop_collection(self):
        def bad_sink(chunk):
            raise RuntimeError("boom")

        c = OutputCollector("p1", 100, bad_sink)
        c.feed(StreamType.STDOUT, "still here")
        assert c.stdout == "still here"

    def test_no_delivery_after_close(self):
        seen = []
        c = OutputCollector("p1", 100, seen.append)
        c.feed(StreamType.STDOUT, "before")
        c.close()
        c.feed(StreamType.STDOUT, "after")
        assert c.closed
        assert [ch.content for ch in seen] == ["before"]
        assert c.stdout == "before"

    def test_zero_limit_rejected(self):
        with pytest.raises(ValueError):
            OutputCollector("p1", 0)


class TestTruncation:
    @pytest.mark.parametrize("chunk_size", [1, 3, 7, 10, 11, 25])
    def test_result_independent_of_chunking(self, chunk_size):
        data = "".join(chr(ord("a") + i % 26) for i in range(25))
        c = OutputCollector("p1", 10)
        for i in range(0, len(data), chunk_size):
            c.feed(StreamType.STDOUT, data[i:i + chunk_size])
        assert c.stdout == data[:10] + TRUNCATION_MARKER
        assert len(c.stdout) == 10 + len(TRUNCATION_MARKER)
        assert c.truncated(StreamType.STDOUT)

    def test_exactly_at_limit_not_truncated(self):
        c = OutputCollector("p1", 5)
        c.feed(StreamType.STDOUT, "12345")
        assert c.stdout == "12345"
        assert not c.truncated(StreamType.STDOUT)

    def test_one_past_limit_truncated(self):
        c = OutputCollector("p1", 5)
        c.feed(StreamType.STDOUT, "12345")
        c.feed(StreamType.STDOUT, "6")
        assert c.stdout == "12345" + TRUNCATION_MARKER

    def test_sink_still_sees_full_chunks(self):
        seen = []
        c = OutputCollector("p1", 3, seen.append)
        c.feed(StreamType.STDERR, "abcdef")
        assert seen[0].content == "abcdef"
        assert c.stderr == "abc" + TRUNCATION_MARKER
        assert c.stdout == ""


class TestStreamDecoder:
    def test_split_multibyte_character(self):
        d = StreamDecoder()
        raw = "é".encode("utf-8")
        assert d.decode(raw[:1]) == ""
        assert d.decode(raw[1:]) == "é"

    def test_invalid_bytes_replaced(self):
        d = StreamDecoder()
        assert d.decode(b"ok\xff") == "ok\ufffd"

    def test_flush_incomplete_tail(self):
        d = StreamDecoder()
        d.decode(b"\xc3")
        assert d.flush() == "\ufffd"
