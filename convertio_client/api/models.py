"""Convertio API response dataclasses.

WHY: Convertio wraps every answer in ``{"code", "status", "data"}``. The
interesting part lives in ``data`` and differs per endpoint. Typed
dataclasses make those shapes explicit and keep dict digging out of the
conversion state machine.

HOW: Each dataclass maps one ``data`` object. Factory methods (from_dict)
take the ``data`` dict, not the full envelope. Fields the service only
sends in some states (step_percent, output) are Optional.

RULES:
- from_dict receives the inner ``data`` object
- step is kept as a plain string; substeps beyond convert/finish/error are opaque
- step_percent defaults to 0 when absent
- output is only present once step is "finish"
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class StartResponse:
    """Payload of POST /convert."""

    id: str
    minutes: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> StartResponse:
        return cls(id=data["id"], minutes=data.get("minutes"))


@dataclass
class UploadResponse:
    """Payload of PUT /convert/{id}/{filename}."""

    id: str
    file: str | None = None
    size: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> UploadResponse:
        return cls(id=data["id"], file=data.get("file"), size=data.get("size"))


@dataclass
class ConversionOutput:
    """Result file description attached to a finished conversion."""

    url: str | None
    size: int | None

    @classmethod
    def from_dict(cls, data: dict) -> ConversionOutput:
        size = data.get("size")
        return cls(
            url=data.get("url"),
            size=int(size) if size is not None else None,
        )


@dataclass
class ConversionStatus:
    """Status payload from polling GET /convert/{id}/status.

    WHY: The poll loop only needs the step, its progress and, once
    finished, where the result lives.

    HOW: Maps the top-level fields of ``data``; the nested ``output``
    object is parsed into ConversionOutput when present.

    RULES:
    - step is always required
    - step_percent defaults to 0
    - output is None until the service reports it
    """

    step: str
    id: str | None = None
    step_percent: int = 0
    minutes: int | None = None
    output: ConversionOutput | None = None

    @classmethod
    def from_dict(cls, data: dict) -> ConversionStatus:
        output = data.get("output")
        return cls(
            step=data["step"],
            id=data.get("id"),
            step_percent=int(data.get("step_percent") or 0),
            minutes=data.get("minutes"),
            output=ConversionOutput.from_dict(output) if output else None,
        )
