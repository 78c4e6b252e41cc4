import dataclasses
from collections.abc import Sequence

from sidecar.crypto.base import BaseKeyCustodian
from sidecar.crypto.codec import hash_content, open_from_storage, reseal, seal_for_storage
from sidecar.crypto.exceptions import FormatFailure, IntegrityFailure
from sidecar.logging.logger import Log
from sidecar.processor.models import Communication, MessageRecord


class CommunicationVault:
    """Seals message text for storage and opens it again for analysis.

    The persistence layer only ever sees the encoded envelope string.
    """

    def __init__(self, custodian: BaseKeyCustodian) -> None:
        self._custodian = custodian

    async def store(self, record: MessageRecord, *, situation_id: str, source: str) -> Communication:
        encrypted = await seal_for_storage(record.text, self._custodian)
        Log.debug(f"Sealed communication {record.id} for situation {situation_id}")
        return Communication(
            id=record.id,
            situation_id=situation_id,
            source=source,
            author_id=record.author_id,
            author_name=record.author_name,
            timestamp=record.timestamp,
            encrypted_content=encrypted,
            content_hash=hash_content(record.text),
        )

    async def read(self, communication: Communication) -> str:
        return await open_from_storage(communication.encrypted_content, self._custodian)

    async def read_many(
        self,
        communications: Sequence[Communication],
    ) -> tuple[list[tuple[Communication, str]], list[str]]:
        """Open every communication in order.

        Tampered or malformed envelopes are skipped and their ids returned
        separately. CryptoFailure (key unavailable) propagates.
        """
        readable: list[tuple[Communication, str]] = []
        unreadable: list[str] = []
        for communication in communications:
            try:
                readable.append((communication, await self.read(communication)))
            except (IntegrityFailure, FormatFailure) as exc:
                Log.warning(f"Communication {communication.id} cannot be read: {exc}")
                unreadable.append(communication.id)
        return readable, unreadable

    async def rotate(
        self,
        communications: Sequence[Communication],
        target: BaseKeyCustodian,
    ) -> list[Communication]:
        """Re-encrypt every communication under *target*'s key.

        Nothing is returned unless every envelope re-seals; the caller
        persists the batch and then switches custodians.
        """
        rotated = [
            dataclasses.replace(
                communication,
                encrypted_content=await reseal(
                    communication.encrypted_content, self._custodian, target
                ),
            )
            for communication in communications
        ]
        Log.info(f"Re-sealed {len(rotated)} communications under a new key")
        return rotated
