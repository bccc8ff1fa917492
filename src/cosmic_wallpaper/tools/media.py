"""In-memory media payloads and their data URI form."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass


@dataclass(frozen=True)
class MediaPayload:
    data: bytes
    mime_type: str

    @classmethod
    def from_data_uri(cls, uri: str) -> MediaPayload:
        """Parse ``data:<mime>;base64,<payload>``.

        Raises:
            ValueError: If the string is not a base64 data URI.
        """
        if not uri.startswith("data:"):
            raise ValueError("not a data URI")
        header, sep, encoded = uri.partition(",")
        if not sep or not header.endswith(";base64"):
            raise ValueError("data URI must be base64 encoded")
        mime_type = header[len("data:"):-len(";base64")] or "application/octet-stream"
        try:
            data = base64.b64decode(encoded, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"invalid base64 payload: {exc}") from exc
        return cls(data=data, mime_type=mime_type)

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"
