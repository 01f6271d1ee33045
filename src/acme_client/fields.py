"""ACME JSON fields."""
import datetime
import logging
from typing import Any

import josepy as jose
import pyrfc3339

logger = logging.getLogger(__name__)

STATUS_WIRE_PENDING = 'pending'
"""Wire representation of the (internally empty) pending status."""

STATUS_NAMES = frozenset(
    ['unknown', 'processing', 'valid', 'invalid', 'revoked'])
"""Status values that travel unchanged between wire and memory."""


class Resource(jose.Field):
    """Resource discriminator field.

    Always emitted. A missing ``resource`` member is accepted when
    decoding, a different value is not.

    """

    def __init__(self, resource_type: str) -> None:
        self.resource_type = resource_type
        super().__init__('resource', default=resource_type, omitempty=True)

    def decode(self, value: Any) -> Any:
        if value != self.resource_type:
            raise jose.DeserializationError(
                'Wrong resource type: {0} instead of {1}'.format(
                    value, self.resource_type))
        return value


class RFC3339Field(jose.Field):
    """RFC3339 field encoder/decoder.

    Handles decoding/encoding between RFC3339 strings and aware (not
    naive) `datetime.datetime` objects
    (e.g. ``datetime.datetime.now(pytz.utc)``).

    """

    @classmethod
    def default_encoder(cls, value: datetime.datetime) -> str:
        return pyrfc3339.generate(value)

    @classmethod
    def default_decoder(cls, value: str) -> datetime.datetime:
        try:
            return pyrfc3339.parse(value)
        except ValueError as error:
            raise jose.DeserializationError(error)


class StatusField(jose.Field):
    """Authorization status.

    ``"pending"`` (or an absent member) decodes to ``""`` and ``""``
    encodes back to ``"pending"``, so the member is never omitted.

    """

    def __init__(self, json_name: str) -> None:
        super().__init__(json_name, default='', omitempty=True)

    def omit(self, value: Any) -> bool:
        return False

    def decode(self, value: Any) -> str:
        if value == STATUS_WIRE_PENDING:
            return ''
        if value not in STATUS_NAMES:
            raise jose.DeserializationError(
                'Unknown status: {0!r}'.format(value))
        return value

    def encode(self, value: str) -> str:
        if not value:
            return STATUS_WIRE_PENDING
        return value


def rfc3339(json_name: str, omitempty: bool = False) -> Any:
    """Generates a type-friendly RFC3339 field."""
    return RFC3339Field(json_name, omitempty=omitempty)


def resource(resource_type: str) -> Any:
    """Generates a type-friendly Resource field."""
    return Resource(resource_type)


def status(json_name: str = 'status') -> Any:
    """Generates a type-friendly StatusField."""
    return StatusField(json_name)
