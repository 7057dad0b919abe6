"""Tests for result parsing by declared output type."""

import pytest

from src.agents.schemas import OutputSchemaType
from src.executor.output_parser import Blob, BlobStore, parse_output


def test_plain_string_is_the_url():
    output = parse_output("https://x/vid.mp4", OutputSchemaType.VIDEO)
    assert output.type == OutputSchemaType.VIDEO
    assert output.data == "https://x/vid.mp4"
    assert output.metadata is None


def test_url_object_copies_metadata():
    output = parse_output(
        {"url": "https://x/vid.mp4", "duration": 5, "filename": "vid.mp4", "size": 1024},
        "video",
    )
    assert output.data == "https://x/vid.mp4"
    assert output.metadata == {"filename": "vid.mp4", "fileSize": 1024, "duration": 5}


def test_video_url_field_gets_default_description():
    output = parse_output({"videoUrl": "https://x/v.mp4", "resolution": "720p"}, "video")
    assert output.data == "https://x/v.mp4"
    assert output.metadata == {"resolution": "720p", "description": "Generated successfully"}

    image = parse_output({"imageUrl": "https://x/i.png"}, "image")
    assert image.data == "https://x/i.png"


def test_url_wins_over_video_url():
    output = parse_output({"url": "https://x/a.mp4", "videoUrl": "https://x/b.mp4"}, "video")
    assert output.data == "https://x/a.mp4"


def test_blob_becomes_handle():
    store = BlobStore()
    output = parse_output(Blob(b"\x00\x01\x02", "video/mp4"), "video", store)

    assert output.data.startswith("blob:")
    assert output.metadata == {"fileSize": 3, "mimeType": "video/mp4"}
    assert store.resolve(output.data).content == b"\x00\x01\x02"
    assert store.revoke(output.data) is True
    assert len(store) == 0


def test_raw_bytes_use_octet_stream():
    store = BlobStore()
    output = parse_output(b"abcd", "image", store)
    assert output.metadata == {"fileSize": 4, "mimeType": "application/octet-stream"}


def test_binary_object_passes_through():
    binary = {"data": {"mimeType": "video/mp4", "fileName": "v.mp4"}}
    output = parse_output({"binary": binary, "metadata": {"fileName": "v.mp4"}}, "video")

    assert output.data == binary
    assert output.metadata == {"fileName": "v.mp4"}


def test_unrecognised_media_shape_passes_through():
    output = parse_output({"something": "else"}, "video")
    assert output.data == {"something": "else"}


def test_text_output():
    assert parse_output("hello", "text").data == "hello"
    assert parse_output({"a": 1}, "text").data == '{"a": 1}'


def test_json_output():
    assert parse_output({"a": 1}, "json").data == {"a": 1}
    assert parse_output('{"a": [1, 2]}', "json").data == {"a": [1, 2]}
    with pytest.raises(ValueError):
        parse_output("not json", "json")


def test_response_metadata_used_when_data_has_none():
    output = parse_output("https://x/v.mp4", "video", metadata={"executionId": "9"})
    assert output.metadata == {"executionId": "9"}

    own = parse_output({"url": "https://x/v.mp4", "duration": 3}, "video", metadata={"x": 1})
    assert own.metadata == {"duration": 3}
