"""CredentialRecord — the structure stored inside the cookie."""
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictBytes,
    StrictInt,
    StrictStr,
    ValidationError,
)

from .conf import IDENTIFIER, EXPIRATION, DATA, SEAL
from .crypto import constant_time_equals
from .exceptions import IntegrityFailure

_WIRE_FIELDS = frozenset({IDENTIFIER, EXPIRATION, DATA, SEAL})


class CredentialRecord(BaseModel):
    """One written cookie.

    ``data`` holds the serialized (and maybe encrypted) payload, ``seal``
    the HMAC binding identifier, expiration and the plaintext payload.
    Types are strict so a type-confused cookie is rejected as malformed.
    """

    identifier: StrictStr
    expiration: Optional[StrictInt] = None
    data: StrictBytes
    seal: StrictStr

    model_config = ConfigDict(frozen=True)

    def __repr__(self) -> str:
        return (
            f'<CredentialRecord id={self.identifier} '
            f'expiration={self.expiration} data={len(self.data)}B>'
        )

    def to_wire(self) -> dict:
        return {
            IDENTIFIER: self.identifier,
            EXPIRATION: self.expiration,
            DATA: self.data,
            SEAL: self.seal,
        }

    @classmethod
    def from_wire(cls, value: Any) -> "CredentialRecord":
        """Build a record from a deserialized cookie.

        Raises:
            IntegrityFailure: value does not have the shape of a record.
        """
        if not isinstance(value, dict) or set(value) != _WIRE_FIELDS:
            raise IntegrityFailure("Cookie is not a credential record")
        try:
            return cls(
                identifier=value[IDENTIFIER],
                expiration=value[EXPIRATION],
                data=value[DATA],
                seal=value[SEAL],
            )
        except ValidationError as err:
            raise IntegrityFailure(
                f"Malformed credential record: {err.error_count()} error(s)"
            ) from err

    def matches(self, other: "CredentialRecord") -> bool:
        """Field for field equality; the seal is compared in constant time."""
        return (
            self.identifier == other.identifier
            and self.expiration == other.expiration
            and self.data == other.data
            and constant_time_equals(self.seal, other.seal)
        )
