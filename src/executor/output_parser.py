"""Parse raw engine results into ExecutionOutput by declared output type.

Media results (video/image) come in several shapes. They are resolved in a
fixed precedence order, first match wins:

1. str                          -> used directly as the URL
2. mapping with "url"           -> url + metadata
3. mapping with videoUrl/imageUrl -> that URL + metadata
4. Blob / bytes                 -> registered in a BlobStore, data = blob: handle
5. mapping with "binary"        -> binary passed through with its metadata
6. anything else                -> passed through unchanged

text results are strings (other values are JSON-encoded); json results are
JSON values (strings are decoded).
"""

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from src.agents.schemas import OutputSchemaType
from src.executor.schemas import ExecutionOutput

logger = logging.getLogger(__name__)

BLOB_SCHEME = "blob:"

_MEDIA_TYPES = (OutputSchemaType.VIDEO, OutputSchemaType.IMAGE)


@dataclass(frozen=True)
class Blob:
    """Raw binary result with its MIME type."""
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class BlobStore:
    """In-process registry of binary results addressable by blob: handles.

    Handles live as long as the store (one per service instance) unless
    revoked explicitly.
    """

    def __init__(self) -> None:
        self._blobs: dict[str, Blob] = {}

    def register(self, blob: Blob) -> str:
        handle = f"{BLOB_SCHEME}{uuid.uuid4()}"
        self._blobs[handle] = blob
        logger.debug(f"Registered blob {handle} ({blob.size} bytes, {blob.content_type})")
        return handle

    def resolve(self, handle: str) -> Optional[Blob]:
        return self._blobs.get(handle)

    def revoke(self, handle: str) -> bool:
        return self._blobs.pop(handle, None) is not None

    def __len__(self) -> int:
        return len(self._blobs)


def _drop_none(metadata: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in metadata.items() if v is not None}


def _media_metadata(data: Mapping[str, Any], default_description: Optional[str] = None) -> dict[str, Any]:
    nested = data.get("metadata") if isinstance(data.get("metadata"), Mapping) else {}
    return _drop_none({
        **nested,
        "filename": data.get("filename") or data.get("name"),
        "fileSize": data.get("fileSize") or data.get("size"),
        "duration": data.get("duration"),
        "resolution": data.get("resolution"),
        "description": data.get("description") or default_description,
    })


def _parse_media(
    data: Any,
    output_type: OutputSchemaType,
    blob_store: Optional[BlobStore],
) -> ExecutionOutput:
    if isinstance(data, str):
        return ExecutionOutput(type=output_type, data=data)

    if isinstance(data, Mapping) and data.get("url"):
        return ExecutionOutput(
            type=output_type,
            data=data["url"],
            metadata=_media_metadata(data),
        )

    if isinstance(data, Mapping) and (data.get("videoUrl") or data.get("imageUrl")):
        return ExecutionOutput(
            type=output_type,
            data=data.get("videoUrl") or data.get("imageUrl"),
            metadata=_media_metadata(data, default_description="Generated successfully"),
        )

    if isinstance(data, (Blob, bytes, bytearray)):
        blob = data if isinstance(data, Blob) else Blob(bytes(data))
        store = blob_store if blob_store is not None else BlobStore()
        return ExecutionOutput(
            type=output_type,
            data=store.register(blob),
            metadata={"fileSize": blob.size, "mimeType": blob.content_type},
        )

    if isinstance(data, Mapping) and data.get("binary"):
        metadata = data.get("metadata")
        return ExecutionOutput(
            type=output_type,
            data=data["binary"],
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )

    logger.warning(
        f"Unrecognised {output_type.value} result shape ({type(data).__name__}), "
        f"passing through unchanged"
    )
    return ExecutionOutput(type=output_type, data=data)


def parse_output(
    data: Any,
    output_type: Union[OutputSchemaType, str],
    blob_store: Optional[BlobStore] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> ExecutionOutput:
    """Parse raw result data according to the agent's output type.

    Args:
        data: Raw result from the engine response
        output_type: The agent's declared output_schema.type
        blob_store: Where binary results are registered
        metadata: Response-level metadata, used when the data carries none

    Raises:
        ValueError: json output that is not valid JSON
    """
    output_type = OutputSchemaType(output_type)

    if output_type in _MEDIA_TYPES:
        output = _parse_media(data, output_type, blob_store)
    elif output_type == OutputSchemaType.TEXT:
        text = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False, default=str)
        output = ExecutionOutput(type=output_type, data=text)
    else:
        value = json.loads(data) if isinstance(data, (str, bytes, bytearray)) else data
        output = ExecutionOutput(type=output_type, data=value)

    if metadata and not output.metadata:
        output = output.model_copy(update={"metadata": dict(metadata)})
    return output
