"""Convertio client: async Python wrapper for the Convertio file-conversion API.

WHY: Converting documents, images or web pages through Convertio takes
several HTTP round-trips: create a job, upload, poll, fetch, delete. This
package hides them behind one Conversion object per job.

HOW: Two layers. ConvertioAPI (api/) is the HTTP transport that signs
requests and types errors. Conversion (conversion.py) is the per-job
state machine built on top of it.

RULES:
- Everything network-facing is async (httpx)
- All errors derive from ConvertioError (errors.py)
"""

from convertio_client.api.client import ConvertioAPI
from convertio_client.config import TransportConfig
from convertio_client.conversion import Conversion, ConversionStep
from convertio_client.errors import (
    ConfigurationError,
    ConversionTimeoutError,
    ConvertioError,
    ProtocolError,
    ServiceError,
    TransportError,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "Conversion",
    "ConversionStep",
    "ConversionTimeoutError",
    "ConvertioAPI",
    "ConvertioError",
    "ProtocolError",
    "ServiceError",
    "TransportConfig",
    "TransportError",
]
