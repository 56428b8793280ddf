"""Convertio API transport package: async HTTP interface to the Convertio service.

WHY: Conversions need to create jobs, upload files, poll status, fetch
results and delete remote artifacts. This package encapsulates all
Convertio HTTP communication behind one async client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. ConvertioAPI provides
one coroutine per HTTP verb. Response payloads are parsed into typed
dataclasses defined in models.py.

RULES:
- All HTTP calls go through ConvertioAPI (no direct httpx usage elsewhere)
- Authentication is the ``apikey`` field of POST bodies
"""

from convertio_client.api.client import ConvertioAPI
from convertio_client.api.models import ConversionOutput, ConversionStatus, StartResponse

__all__ = ["ConversionOutput", "ConversionStatus", "ConvertioAPI", "StartResponse"]
