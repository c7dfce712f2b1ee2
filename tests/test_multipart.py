"""Tests for multipart request encoding."""

import io
from datetime import datetime, timedelta, timezone

import pytest

from cloudstorage_transport.exceptions import TransportError, UnsupportedOperationError
from cloudstorage_transport.multipart import BOUNDARY
from cloudstorage_transport.uploads import FileUploadRequest, ImageUploadRequest
from cloudstorage_transport.utils import BUFFER_SIZE

URL = "https://api.test/api/files"


class OneShotStream(io.RawIOBase):
    """A readable stream that cannot seek, like a socket or pipe."""

    def __init__(self, data: bytes):
        self._data = io.BytesIO(data)

    def readable(self):
        return True

    def readinto(self, buffer):
        chunk = self._data.read(len(buffer))
        buffer[:len(chunk)] = chunk
        return len(chunk)


@pytest.fixture
def file_bytes():
    return bytes(range(256)) * 100  # 25600 bytes, several chunks


def encode(request, listener=None) -> bytes:
    sink = io.BytesIO()
    request.write_to(sink, listener)
    return sink.getvalue()


class TestEncoding:
    def test_round_trip_recovers_fields_and_file(self, file_bytes, multipart_parser):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "report.pdf")
        request.put_field("attributes", '{"name": "report.pdf", "parent": {"id": "0"}}')
        request.put_field("note", "quarterly")

        parts = multipart_parser(encode(request))

        headers, content = parts["file"]
        assert content == file_bytes
        assert headers["Content-Disposition"] == 'form-data; name="file"; filename="report.pdf"'
        assert headers["Content-Type"] == "application/pdf"
        assert parts["attributes"][1] == b'{"name": "report.pdf", "parent": {"id": "0"}}'
        assert parts["note"][1] == b"quarterly"

    def test_file_part_comes_first(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.put_field("a", "1")
        request.set_file(io.BytesIO(file_bytes), "data.bin")

        body = encode(request)

        assert body.index(b'name="file"') < body.index(b'name="a"')

    def test_total_length_is_headers_plus_file_plus_fields(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin")
        request.put_field("key", "value")

        body = encode(request)

        delimiter = len(b"--" + BOUNDARY.encode() + b"\r\n")
        file_headers = len(
            b'Content-Disposition: form-data; name="file"; filename="data.bin"\r\n'
            b"Content-Type: application/octet-stream\r\n\r\n"
        )
        field_part = len(b'Content-Disposition: form-data; name="key"\r\n\r\nvalue\r\n')
        closing = len(b"--" + BOUNDARY.encode() + b"--\r\n")
        expected = delimiter + file_headers + len(file_bytes) + 2 + delimiter + field_part + closing
        assert len(body) == expected

    def test_file_is_streamed_in_bounded_chunks(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin")

        chunks = list(request.iter_body())

        assert max(len(chunk) for chunk in chunks[1:-2]) <= BUFFER_SIZE
        assert b"".join(chunks[1:-2]) == file_bytes

    def test_empty_file(self, multipart_parser):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(b""), "empty.txt")

        parts = multipart_parser(encode(request))

        assert parts["file"][1] == b""

    def test_names_are_escaped(self, multipart_parser):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(b"x"), 'my "quoted"\nfile.txt')

        body = encode(request)

        assert b'filename="my %22quoted%22%0Afile.txt"' in body

    def test_upload_callback_pushes_content(self, file_bytes, multipart_parser):
        request = FileUploadRequest(None, URL)
        calls = []

        def produce(sink):
            sink.write(file_bytes[:1000])
            sink.write(file_bytes[1000:])

        request.set_upload_callback(produce, "generated.bin")

        parts = multipart_parser(encode(request, lambda done, total: calls.append((done, total))))

        assert parts["file"][1] == file_bytes
        assert calls[-1] == (len(file_bytes), len(file_bytes))

    def test_missing_file_is_rejected(self):
        request = FileUploadRequest(None, URL)
        request.put_field("a", "b")

        with pytest.raises(UnsupportedOperationError):
            encode(request)


class TestProgress:
    def test_progress_is_non_decreasing_and_reaches_file_size(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin")
        calls = []

        encode(request, lambda done, total: calls.append((done, total)))

        done_values = [done for done, _ in calls]
        assert done_values == sorted(done_values)
        assert done_values[-1] >= len(file_bytes)
        assert all(total == len(file_bytes) for _, total in calls)

    def test_size_hint_is_used_as_total(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin", size=99999)
        totals = set()

        encode(request, lambda done, total: totals.add(total))

        assert totals == {99999}

    def test_total_is_unknown_for_unseekable_stream(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(OneShotStream(file_bytes), "data.bin")
        calls = []

        encode(request, lambda done, total: calls.append((done, total)))

        assert calls[-1] == (len(file_bytes), -1)


class TestFields:
    def test_last_write_wins(self, multipart_parser):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(b"x"), "a.txt")
        request.put_field("name", "first")
        request.put_field("name", "second")

        body = encode(request)

        assert body.count(b'name="name"') == 1
        assert multipart_parser(body)["name"][1] == b"second"

    def test_datetime_fields_use_api_format(self):
        request = FileUploadRequest(None, URL)
        request.put_field("content_created_at", datetime(2024, 5, 1, 14, 30, tzinfo=timezone(timedelta(hours=2))))
        request.put_field("content_modified_at", datetime(2024, 5, 1, 12, 0, 5))

        assert request.fields["content_created_at"] == "2024-05-01T12:30:00+00:00"
        assert request.fields["content_modified_at"] == "2024-05-01T12:00:05+00:00"

    @pytest.mark.parametrize("value", [None, 42, b"bytes"])
    def test_non_text_values_are_rejected(self, value):
        request = FileUploadRequest(None, URL)

        with pytest.raises(TypeError):
            request.put_field("parent_id", value)

        assert "parent_id" not in request.fields


class TestRequestContract:
    def test_content_type_header_carries_boundary(self):
        request = FileUploadRequest(None, URL)

        assert request.method == "POST"
        assert request.get_headers()["Content-Type"] == f"multipart/form-data; boundary={BOUNDARY}"

    def test_raw_body_is_unsupported(self):
        request = FileUploadRequest(None, URL)

        with pytest.raises(UnsupportedOperationError):
            request.set_body("raw")
        with pytest.raises(UnsupportedOperationError):
            request.set_body(io.BytesIO(b"raw"))
        with pytest.raises(UnsupportedOperationError):
            request.set_json({"a": 1})

    def test_content_checksum_header(self):
        request = FileUploadRequest(None, URL)

        request.set_content_checksum("2fd4e1c67a2d28fced849ee1bb76e7391b93eb12")

        assert request.get_headers()["Content-MD5"] == "2fd4e1c67a2d28fced849ee1bb76e7391b93eb12"

    def test_body_is_never_logged(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin")
        request.put_field("secret", "value")

        assert request.body_to_string() == ""
        assert "value" not in str(request)

    def test_reset_rewinds_to_original_position(self, file_bytes, multipart_parser):
        stream = io.BytesIO(b"HEADER" + file_bytes)
        stream.seek(6)
        request = FileUploadRequest(None, URL)
        request.set_file(stream, "data.bin")

        first = encode(request)
        request.reset_body()
        second = encode(request)

        assert first == second
        assert multipart_parser(second)["file"][1] == file_bytes

    def test_reset_of_unseekable_stream_fails(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(OneShotStream(file_bytes), "data.bin")

        with pytest.raises(TransportError):
            request.reset_body()

    def test_reset_in_callback_mode_is_a_no_op(self):
        request = FileUploadRequest(None, URL)
        request.set_upload_callback(lambda sink: sink.write(b"abc"), "a.txt")

        request.reset_body()


class TestContentLength:
    def test_content_length_matches_encoded_body(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin")
        request.put_field("attributes", '{"name": "data.bin"}')
        request.put_field("note", "naïve")

        expected = request.content_length()

        assert expected == len(encode(request))

    def test_known_size_upload_is_sent_with_content_length(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin")
        request.put_field("key", "value")

        prepared = request.build().prepare()
        body = b"".join(prepared.body)

        assert prepared.headers["Content-Length"] == str(len(body))
        assert "Transfer-Encoding" not in prepared.headers

    def test_framing_does_not_depend_on_listener(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin")

        prepared = request.build(lambda done, total: None).prepare()

        assert prepared.headers["Content-Length"] == str(request.content_length())
        assert "Transfer-Encoding" not in prepared.headers

    def test_size_hint_is_used_for_unseekable_stream(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(OneShotStream(file_bytes), "data.bin", size=len(file_bytes))

        expected = request.content_length()

        assert expected == len(encode(request))

    def test_unknown_size_falls_back_to_chunked(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(OneShotStream(file_bytes), "data.bin")

        prepared = request.build().prepare()

        assert request.content_length() == -1
        assert prepared.headers["Transfer-Encoding"] == "chunked"
        assert "Content-Length" not in prepared.headers

    def test_callback_length_is_unknown(self):
        request = FileUploadRequest(None, URL)
        request.set_upload_callback(lambda sink: sink.write(b"abc"), "a.txt", size=3)

        assert request.content_length() == -1


class TestResend:
    def test_second_build_without_reset_is_rejected(self, file_bytes):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin")
        b"".join(request.build().data)

        with pytest.raises(UnsupportedOperationError):
            request.build()

    def test_reset_allows_a_full_resend(self, file_bytes, multipart_parser):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(file_bytes), "data.bin")
        first = b"".join(request.build().data)

        request.reset_body()
        second = b"".join(request.build().data)

        assert first == second
        assert multipart_parser(second)["file"][1] == file_bytes

    def test_new_file_replaces_sent_stream(self, file_bytes, multipart_parser):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(b"old"), "old.txt")
        b"".join(request.build().data)

        request.set_file(io.BytesIO(file_bytes), "data.bin")

        assert multipart_parser(b"".join(request.build().data))["file"][1] == file_bytes

    def test_callback_requests_can_be_rebuilt(self, multipart_parser):
        request = FileUploadRequest(None, URL)
        request.set_upload_callback(lambda sink: sink.write(b"abc"), "a.txt")

        first = b"".join(request.build().data)
        second = b"".join(request.build().data)

        assert first == second
        assert multipart_parser(second)["file"][1] == b"abc"


class TestConcreteRequests:
    @pytest.mark.parametrize(
        "filename, content_type",
        [("photo.png", "image/png"), ("photo.JPG", "image/jpeg"), ("photo.jpeg", "image/jpeg")],
    )
    def test_image_part(self, filename, content_type, multipart_parser):
        request = ImageUploadRequest(None, URL)
        request.set_file(io.BytesIO(b"\x89PNG"), filename)

        headers, _ = multipart_parser(encode(request))["pic"]

        assert headers["Content-Type"] == content_type

    def test_image_rejects_other_types(self):
        request = ImageUploadRequest(None, URL)

        with pytest.raises(ValueError):
            request.set_file(io.BytesIO(b"GIF89a"), "anim.gif")

    def test_file_type_falls_back_to_octet_stream(self, multipart_parser):
        request = FileUploadRequest(None, URL)
        request.set_file(io.BytesIO(b"x"), "blob.unknownext")

        headers, _ = multipart_parser(encode(request))["file"]

        assert headers["Content-Type"] == "application/octet-stream"
