"""Serialization of checkpoints to and from storage records."""

import base64
import binascii
import logging
import zlib

from pydantic import ValidationError

from ..exceptions import CheckpointDecodeError
from ..models.checkpoint_models import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointRecord,
    CheckpointTuple,
    ThreadRef,
)

logger = logging.getLogger(__name__)

ENCODING_JSON = "json"
ENCODING_ZLIB = "zlib+b64"

SUPPORTED_ENCODINGS = (ENCODING_JSON, ENCODING_ZLIB)


class CheckpointCodec:
    """
    Encode checkpoints for storage and decode them back.

    The snapshot is written as JSON, optionally zlib-compressed and base64
    wrapped so it fits a text column. Metadata stays plain JSON. Each record
    carries its encoding, so a table written with and without compression
    decodes correctly.
    """

    def __init__(self, enable_compression: bool = True, checkpoint_type: str = "funeral_planning"):
        self.enable_compression = enable_compression
        self.checkpoint_type = checkpoint_type

    def encode(
        self,
        ref: ThreadRef,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
    ) -> CheckpointRecord:
        """
        Build the storage record for a checkpoint.

        Args:
            ref: Address of the thread (the checkpoint id comes from ``checkpoint``)
            checkpoint: Snapshot to store
            metadata: Metadata stored alongside

        Returns:
            Encoded record
        """
        payload = checkpoint.model_dump_json()
        encoding = ENCODING_JSON
        if self.enable_compression:
            payload = base64.b64encode(zlib.compress(payload.encode("utf-8"))).decode("ascii")
            encoding = ENCODING_ZLIB

        return CheckpointRecord(
            thread_id=ref.thread_id,
            checkpoint_ns=ref.checkpoint_ns,
            checkpoint_id=checkpoint.id,
            parent_checkpoint_id=checkpoint.parent_id,
            type=self.checkpoint_type,
            checkpoint=payload,
            metadata=metadata.model_dump_json(),
            encoding=encoding,
            stage=metadata.stage or checkpoint.channel_values.planning_stage,
            checkpoint_ts=checkpoint.timestamp,
        )

    def decode(self, record: CheckpointRecord) -> CheckpointTuple:
        """
        Rebuild a checkpoint tuple from a storage record.

        Raises:
            CheckpointDecodeError: If the payload or metadata is corrupted
        """
        try:
            if record.encoding == ENCODING_ZLIB:
                raw = zlib.decompress(base64.b64decode(record.checkpoint, validate=True))
                payload = raw.decode("utf-8")
            elif record.encoding == ENCODING_JSON:
                payload = record.checkpoint
            else:
                raise CheckpointDecodeError(
                    f"Unknown encoding {record.encoding!r} for checkpoint {record.checkpoint_id}"
                )

            checkpoint = Checkpoint.model_validate_json(payload)
            metadata = CheckpointMetadata.model_validate_json(record.metadata)
        except (zlib.error, binascii.Error, UnicodeDecodeError, ValidationError) as e:
            logger.error(f"Failed to decode checkpoint {record.checkpoint_id}: {e}")
            raise CheckpointDecodeError(
                f"Checkpoint {record.checkpoint_id} of thread {record.thread_id} is corrupted"
            ) from e

        parent_ref = None
        if record.parent_checkpoint_id:
            parent_ref = record.ref.with_checkpoint(record.parent_checkpoint_id)

        return CheckpointTuple(
            ref=record.ref,
            checkpoint=checkpoint,
            metadata=metadata,
            parent_ref=parent_ref,
        )

    def load_record(self, data: str) -> CheckpointRecord:
        """
        Parse a record serialized with ``dump_record``.

        Raises:
            CheckpointDecodeError: If the data is not a valid record
        """
        try:
            return CheckpointRecord.model_validate_json(data)
        except ValidationError as e:
            raise CheckpointDecodeError(f"Malformed checkpoint record: {e}") from e

    @staticmethod
    def dump_record(record: CheckpointRecord) -> str:
        return record.model_dump_json()
