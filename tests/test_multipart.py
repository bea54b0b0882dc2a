"""Tests for filekit.core.storage.multipart — chunked upload engine."""
from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from filekit.core.config import DEFAULT_CHUNK_SIZE, MIB, MIN_PART_SIZE, MULTIPART_THRESHOLD
from filekit.core.errors import MultipartAbortedError, UploadCancelledError
from filekit.core.storage.multipart import (
    MultipartSession,
    MultipartUploader,
    UploadState,
    effective_chunk_size,
    iter_parts,
    part_count,
)


def make_client() -> MagicMock:
    client = MagicMock()
    client.create_multipart_upload.return_value = {"UploadId": "up-1"}
    client.upload_part.side_effect = lambda **kw: {"ETag": f'"etag-{kw["PartNumber"]}"'}
    client.complete_multipart_upload.return_value = {"ETag": '"final-etag"'}
    return client


# ======================================================================
# Part arithmetic
# ======================================================================


class TestPartMath:
    """Chunk sizing and part enumeration."""

    def test_chunk_size_clamped_to_minimum(self):
        assert effective_chunk_size(1) == MIN_PART_SIZE

    def test_chunk_size_default(self):
        assert effective_chunk_size(None) == DEFAULT_CHUNK_SIZE

    @pytest.mark.parametrize("total, chunk, expected", [
        (MULTIPART_THRESHOLD, DEFAULT_CHUNK_SIZE, 10),
        (MULTIPART_THRESHOLD + 1, DEFAULT_CHUNK_SIZE, 11),
        (25 * MIB, 10 * MIB, 3),
        (5 * MIB, 5 * MIB, 1),
    ])
    def test_part_count_is_ceiling(self, total: int, chunk: int, expected: int):
        assert part_count(total, chunk) == expected
        assert len(list(iter_parts(total, chunk))) == expected

    def test_parts_are_contiguous_and_cover_payload(self):
        parts = list(iter_parts(25, 10))
        assert parts == [(1, 0, 10), (2, 10, 20), (3, 20, 25)]


class TestSession:
    """MultipartSession — ordering and terminal states."""

    def test_out_of_order_part_rejected(self):
        session = MultipartSession(key="k", upload_id="u", total_bytes=10)
        session.record_part(1, "e1", 5)
        with pytest.raises(RuntimeError, match="out of order"):
            session.record_part(3, "e3", 5)

    def test_progress_capped_below_100(self):
        session = MultipartSession(key="k", upload_id="u", total_bytes=10)
        session.record_part(1, "e1", 10)
        assert session.progress == 99

    def test_no_transition_out_of_terminal_state(self):
        session = MultipartSession(key="k", upload_id="u", total_bytes=10)
        session.transition(UploadState.ABORTING)
        session.transition(UploadState.ABORTED)
        with pytest.raises(RuntimeError):
            session.transition(UploadState.PARTS_UPLOADING)


# ======================================================================
# Uploader
# ======================================================================


class TestUploader:
    """MultipartUploader.upload against a mocked boto3 client."""

    def test_uploads_all_parts_in_order(self):
        client = make_client()
        data = bytes(25 * MIB)
        uploader = MultipartUploader(client, "bucket", 10 * MIB)

        result = asyncio.run(uploader.upload("big.bin", data, extra_args={"ContentType": "x/y"}))

        assert result.parts == 3
        assert result.size == len(data)
        assert result.etag == "final-etag"

        client.create_multipart_upload.assert_called_once_with(
            Bucket="bucket", Key="big.bin", ContentType="x/y",
        )
        calls = client.upload_part.call_args_list
        assert [c.kwargs["PartNumber"] for c in calls] == [1, 2, 3]
        assert [len(c.kwargs["Body"]) for c in calls] == [10 * MIB, 10 * MIB, 5 * MIB]
        assert all(c.kwargs["UploadId"] == "up-1" for c in calls)

        completed = client.complete_multipart_upload.call_args.kwargs
        assert completed["MultipartUpload"]["Parts"] == [
            {"PartNumber": 1, "ETag": '"etag-1"'},
            {"PartNumber": 2, "ETag": '"etag-2"'},
            {"PartNumber": 3, "ETag": '"etag-3"'},
        ]
        client.abort_multipart_upload.assert_not_called()

    def test_progress_is_monotonic_and_ends_at_100(self):
        client = make_client()
        seen: list[int] = []
        uploader = MultipartUploader(client, "bucket", 10 * MIB)

        asyncio.run(uploader.upload("big.bin", bytes(25 * MIB), on_progress=seen.append))

        assert seen == [40, 80, 99, 100]

    def test_failure_at_part_k_aborts(self):
        client = make_client()
        client.upload_part.side_effect = [{"ETag": '"e1"'}, ConnectionError("reset by peer")]
        uploader = MultipartUploader(client, "bucket", 5 * MIB)

        with pytest.raises(MultipartAbortedError) as exc_info:
            asyncio.run(uploader.upload("big.bin", bytes(15 * MIB)))

        err = exc_info.value
        assert err.upload_id == "up-1"
        assert err.abort_error is None
        assert "reset by peer" in str(err)
        assert isinstance(err.__cause__, ConnectionError)
        client.abort_multipart_upload.assert_called_once_with(
            Bucket="bucket", Key="big.bin", UploadId="up-1",
        )
        client.complete_multipart_upload.assert_not_called()

    def test_completion_failure_aborts(self):
        client = make_client()
        client.complete_multipart_upload.side_effect = RuntimeError("assembly failed")
        uploader = MultipartUploader(client, "bucket", 5 * MIB)

        with pytest.raises(MultipartAbortedError, match="completing"):
            asyncio.run(uploader.upload("big.bin", bytes(6 * MIB)))
        client.abort_multipart_upload.assert_called_once()

    def test_abort_failure_is_surfaced(self):
        client = make_client()
        client.upload_part.side_effect = RuntimeError("part failed")
        client.abort_multipart_upload.side_effect = RuntimeError("abort failed too")
        uploader = MultipartUploader(client, "bucket", 5 * MIB)

        with pytest.raises(MultipartAbortedError) as exc_info:
            asyncio.run(uploader.upload("big.bin", bytes(6 * MIB)))

        err = exc_info.value
        assert isinstance(err.abort_error, RuntimeError)
        assert "abort also failed: abort failed too" in str(err)
        assert "upload_id=up-1" in str(err)

    def test_create_failure_has_nothing_to_abort(self):
        client = make_client()
        client.create_multipart_upload.side_effect = RuntimeError("denied")
        uploader = MultipartUploader(client, "bucket", 5 * MIB)

        with pytest.raises(MultipartAbortedError) as exc_info:
            asyncio.run(uploader.upload("big.bin", bytes(6 * MIB)))

        assert exc_info.value.upload_id is None
        client.upload_part.assert_not_called()
        client.abort_multipart_upload.assert_not_called()

    def test_cancel_between_parts(self):
        client = make_client()
        uploader = MultipartUploader(client, "bucket", 5 * MIB)

        async def scenario() -> None:
            event = asyncio.Event()
            await uploader.upload(
                "big.bin", bytes(15 * MIB),
                on_progress=lambda pct: event.set(),
                cancel_event=event,
            )

        with pytest.raises(UploadCancelledError) as exc_info:
            asyncio.run(scenario())

        assert exc_info.value.upload_id == "up-1"
        assert client.upload_part.call_count == 1
        client.abort_multipart_upload.assert_called_once()
        client.complete_multipart_upload.assert_not_called()

    def test_cancelled_error_is_also_a_multipart_abort(self):
        assert issubclass(UploadCancelledError, MultipartAbortedError)
