"""Tests for ProgressReportingStream."""

import io

from cloudstorage_transport.progress import ProgressReportingStream


def test_reads_are_reported_cumulatively():
    calls = []
    stream = ProgressReportingStream(io.BytesIO(b"abcdefghij"), lambda done, total: calls.append((done, total)), 10)

    assert stream.read(4) == b"abcd"
    assert stream.read(4) == b"efgh"
    assert stream.read() == b"ij"
    assert stream.read() == b""

    assert calls == [(4, 10), (8, 10), (10, 10)]


def test_writes_are_reported():
    sink = io.BytesIO()
    calls = []
    stream = ProgressReportingStream(sink, lambda done, total: calls.append(done))

    stream.write(b"12345")
    stream.write(b"678")

    assert sink.getvalue() == b"12345678"
    assert calls == [5, 8]
    assert stream.transferred == 8


def test_readinto_reports_progress():
    calls = []
    stream = ProgressReportingStream(io.BytesIO(b"xyz"), lambda done, total: calls.append(done))
    buffer = bytearray(8)

    assert stream.readinto(buffer) == 3
    assert bytes(buffer[:3]) == b"xyz"
    assert calls == [3]


def test_close_closes_wrapped_stream_once():
    inner = io.BytesIO(b"data")
    stream = ProgressReportingStream(inner, lambda done, total: None)

    stream.close()
    stream.close()

    assert inner.closed
    assert stream.closed
