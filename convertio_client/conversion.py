"""Conversion session: one Convertio workflow from input to result file.

WHY: A conversion involves several calls against ConvertioAPI: create the
job, upload the input, poll status, fetch the result and delete the remote
artifacts. The caller also needs to inspect progress and errors in between.
Conversion bundles those calls with the state they produce so
application code deals with one object per conversion.

HOW: Conversion wraps a ConvertioAPI. Every operation is a coroutine that
returns self, so calls chain naturally:

    async with Conversion(api_key) as conv:
        await conv.start("report.docx", "pdf")
        await conv.wait()
        await conv.download("report.pdf")
        await conv.delete()

State flows forward only: not-started -> convert -> (finish | error).
Intermediate steps reported by the service (upload, wait, ...) are kept as
opaque strings.

RULES:
- convert_id is set once, by the first successful start, and never changes
- A Conversion runs a single workflow: starting twice raises RuntimeError
- status/wait/fetch/download/delete before a successful start raise RuntimeError
- raw_start absorbs a ServiceError into step/error_message; every other
  operation records the error in state and then re-raises it
- wait() polls every POLL_INTERVAL_S with asyncio.sleep, so cancelling the
  awaiting task aborts the loop and any in-flight request
- Not safe for concurrent use by several tasks; use one instance per conversion
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import enum
import errno
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Mapping, TypeVar
from urllib.parse import quote

import httpx

from convertio_client.api.client import ConvertioAPI
from convertio_client.api.models import ConversionStatus, StartResponse, UploadResponse
from convertio_client.config import POLL_INTERVAL_S, load_api_key
from convertio_client.errors import (
    ConversionTimeoutError,
    ProtocolError,
    ServiceError,
)

logger = logging.getLogger(__name__)

_Model = TypeVar("_Model")


class ConversionStep(str, enum.Enum):
    """Lifecycle steps with a meaning on the client side.

    Inherits from str so members compare equal to the raw step strings
    the service sends back.
    """

    NOT_STARTED = "not-started"
    CONVERT = "convert"
    FINISH = "finish"
    ERROR = "error"


TERMINAL_STEPS = frozenset({ConversionStep.FINISH.value, ConversionStep.ERROR.value})

EMPTY_RESULT_MESSAGE = "Empty result file"
SAVE_FAILED_MESSAGE = "Error saving local file"


class Conversion:
    """A single Convertio conversion and its observable state.

    Attributes:
        step: Current step. One of ConversionStep or an opaque service substep.
        step_percent: Progress of the current step (0-100).
        minutes: Conversion minutes reported by the service, if any.
        error_message: Set when step is "error", cleared by a successful status().
        result_public_url: Public URL of the result, once finished.
        result_size: Result size in bytes, once finished.
        result_content: Result bytes, after fetch_result_content()/download().
        last_response: Last decoded response, for diagnostics.
    """

    def __init__(
        self,
        api_key: str | None = None,
        options: Mapping[str, Any] | None = None,
        *,
        api: ConvertioAPI | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if api is None:
            if api_key is None:
                api_key = load_api_key()
            api = ConvertioAPI(api_key, options, transport=transport)
        elif options:
            api.configure(options)

        self._api = api
        self._convert_id: str | None = None

        self.step: str = ConversionStep.NOT_STARTED.value
        self.step_percent: int = 0
        self.minutes: int | None = None
        self.error_message: str | None = None
        self.result_public_url: str | None = None
        self.result_size: int | None = None
        self.result_content: bytes | None = None
        self.last_response: Any = None

    async def __aenter__(self) -> Conversion:
        await self._api.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self._api.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def api(self) -> ConvertioAPI:
        return self._api

    @property
    def convert_id(self) -> str | None:
        return self._convert_id

    def get_convert_id(self) -> str | None:
        return self._convert_id

    # ------------------------------------------------------------------
    # Starting a conversion
    # ------------------------------------------------------------------

    async def start(
        self,
        input_path: str | Path,
        output_format: str,
        options: Mapping[str, Any] | None = None,
    ) -> Conversion:
        """Start a conversion of a local file.

        WHY: Local files are uploaded to Convertio with a raw PUT, which
        avoids the base64 inflation of start_from_content().

        HOW: Creates the job with ``input: upload``, then streams the file
        to /convert/{id}/{filename}. If the service refuses the job, the
        upload is skipped and the refusal is left in step/error_message.

        RULES:
        - Raises FileNotFoundError before any network call if the file is missing
        - The file handle is closed on every exit path
        - A ServiceError during the upload sets step to "error" and is re-raised
        """
        self._ensure_not_started()
        input_path = Path(input_path)
        if not input_path.is_file():
            raise FileNotFoundError(errno.ENOENT, "Input file not found", str(input_path))

        await self.raw_start({
            "input": "upload",
            "outputformat": output_format,
            "options": dict(options or {}),
        })
        if self.step == ConversionStep.ERROR:
            return self

        path = f"/convert/{self._convert_id}/{quote(input_path.name)}"
        try:
            with open(input_path, "rb") as fh:
                response = await self._api.put(path, fh)
        except ServiceError as exc:
            self._fail(exc.message)
            raise

        self.last_response = response
        if isinstance(response, dict) and isinstance(response.get("data"), dict):
            upload = _parse(UploadResponse, response)
            logger.info(
                "Uploaded %s to conversion %s (%s bytes)",
                input_path.name, self._convert_id, upload.size,
            )
        return self

    async def start_from_url(
        self,
        url: str,
        output_format: str,
        options: Mapping[str, Any] | None = None,
    ) -> Conversion:
        """Start a conversion of a remote file or web page."""
        return await self.raw_start({
            "input": "url",
            "file": url,
            "outputformat": output_format,
            "options": dict(options or {}),
        })

    async def start_from_content(
        self,
        content: bytes | str,
        input_format: str,
        output_format: str,
        options: Mapping[str, Any] | None = None,
    ) -> Conversion:
        """Start a conversion of in-memory content.

        The content is sent base64-encoded as ``raw.{input_format}``; str
        content is UTF-8 encoded first.
        """
        if isinstance(content, str):
            content = content.encode("utf-8")
        return await self.raw_start({
            "input": "base64",
            "file": base64.b64encode(content).decode("ascii"),
            "filename": f"raw.{input_format}",
            "outputformat": output_format,
            "options": dict(options or {}),
        })

    async def raw_start(self, data: Mapping[str, Any]) -> Conversion:
        """POST a job definition to /convert and record the outcome.

        WHY: All start variants share this call. A refused job (bad
        format, no minutes left, ...) is an expected outcome that callers
        check through ``step``, so it is not raised.

        HOW: On success stores the conversion id and moves to "convert".
        On ServiceError moves to "error" with the service message and
        leaves convert_id unset.

        RULES:
        - Only ServiceError is absorbed; TransportError/ProtocolError propagate
        - Raises RuntimeError if this Conversion was already started
        """
        self._ensure_not_started()
        try:
            response = await self._api.post("/convert", data)
        except ServiceError as exc:
            logger.warning("Convertio refused conversion: %s", exc.message)
            self._fail(exc.message)
            return self

        self.last_response = response
        started = _parse(StartResponse, response)
        if not started.id:
            raise ProtocolError("Convertio returned an empty conversion id")

        self._convert_id = started.id
        self.minutes = started.minutes
        self.step = ConversionStep.CONVERT.value
        self.step_percent = 0
        self.error_message = None
        logger.info("Started conversion %s (input=%s)", started.id, data.get("input"))
        return self

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def status(self) -> Conversion:
        """Refresh step and progress from GET /convert/{id}/status.

        RULES:
        - Always performs a request, even in a terminal step
        - step_percent defaults to 0 when absent
        - On "finish", result_public_url and result_size are captured
        - A ServiceError sets step to "error" and is re-raised
        """
        convert_id = self._require_started()
        try:
            response = await self._api.get(f"/convert/{convert_id}/status")
        except ServiceError as exc:
            self._fail(exc.message)
            raise

        self.last_response = response
        status = _parse(ConversionStatus, response)

        self.error_message = None
        self.step = status.step
        self.step_percent = status.step_percent
        if status.minutes is not None:
            self.minutes = status.minutes
        if status.step == ConversionStep.FINISH and status.output is not None:
            self.result_public_url = status.output.url
            self.result_size = status.output.size
        logger.debug("Conversion %s: %s %d%%", convert_id, self.step, self.step_percent)
        return self

    async def wait(
        self,
        *,
        poll_interval: float = POLL_INTERVAL_S,
        timeout: float | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> Conversion:
        """Poll status() until the conversion reaches "finish" or "error".

        WHY: Convertio converts asynchronously; callers usually just want
        to block their task until the result is ready.

        HOW: Sleeps poll_interval seconds, calls status(), repeats. The
        sleep is asyncio.sleep, so other tasks keep running and cancelling
        the awaiting task stops the loop.

        RULES:
        - Returns immediately, without a request, if already terminal
        - No iteration cap; timeout=None waits as long as the service takes
        - Raises ConversionTimeoutError once ``timeout`` seconds have elapsed
        - Errors from status() propagate

        Args:
            poll_interval: Seconds between two status requests.
            timeout: Optional overall limit in seconds.
            on_status: Optional callback for status updates.
        """
        if self.step in TERMINAL_STEPS:
            return self
        convert_id = self._require_started()

        start_time = time.monotonic()
        while self.step not in TERMINAL_STEPS:
            elapsed = time.monotonic() - start_time
            if timeout is not None and elapsed >= timeout:
                raise ConversionTimeoutError(
                    f"Conversion {convert_id} still in step {self.step!r} "
                    f"after {elapsed:.0f}s (limit: {timeout}s)"
                )

            await asyncio.sleep(poll_interval)
            await self.status()

            if on_status:
                if self.step == ConversionStep.ERROR:
                    on_status(f"Conversion error: {self.error_message}")
                else:
                    on_status(f"Step {self.step}: {self.step_percent}%")
        return self

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    async def fetch_result_content(self) -> Conversion:
        """Fetch the result file into ``result_content``.

        RULES:
        - Missing, empty or undecodable content raises ServiceError("Empty result file")
        - That failure also sets step to "error"
        """
        convert_id = self._require_started()
        try:
            response = await self._api.get(f"/convert/{convert_id}/dl/base64")
        except ServiceError as exc:
            self._fail(exc.message)
            raise

        self.last_response = response
        content = _decode_content(response)
        if not content:
            self._fail(EMPTY_RESULT_MESSAGE)
            raise ServiceError(EMPTY_RESULT_MESSAGE)

        self.result_content = content
        return self

    async def download(self, local_path: str | Path) -> Conversion:
        """Fetch the result and write it to ``local_path``.

        WHY: Writing can fail silently (full disk, network filesystems), so
        the file is checked after the write, not just the write call.

        HOW: Calls fetch_result_content(), writes the bytes in a ``with``
        block, then checks the file exists and is non-empty.

        RULES:
        - An empty result raises before the target file is opened
        - OSError while writing, or a missing/zero-size file afterwards,
          raises ServiceError("Error saving local file")
        """
        await self.fetch_result_content()
        local_path = Path(local_path)

        try:
            with open(local_path, "wb") as fh:
                fh.write(self.result_content)
        except OSError as exc:
            self._fail(SAVE_FAILED_MESSAGE)
            raise ServiceError(SAVE_FAILED_MESSAGE) from exc

        if not local_path.is_file() or local_path.stat().st_size == 0:
            self._fail(SAVE_FAILED_MESSAGE)
            raise ServiceError(SAVE_FAILED_MESSAGE)

        logger.info(
            "Saved result of conversion %s to %s (%d bytes)",
            self._convert_id, local_path, len(self.result_content),
        )
        return self

    async def delete(self) -> Conversion:
        """Delete the conversion and its files from Convertio hosts."""
        convert_id = self._require_started()
        await self._api.delete(f"/convert/{convert_id}")
        logger.info("Deleted conversion %s", convert_id)
        return self

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_not_started(self) -> None:
        if self._convert_id is not None or self.step != ConversionStep.NOT_STARTED:
            raise RuntimeError(
                f"Conversion already started (step={self.step!r}); "
                "create a new Conversion to run another one"
            )

    def _require_started(self) -> str:
        if not self._convert_id:
            raise RuntimeError(
                "Conversion has not been started: call start(), "
                "start_from_url() or start_from_content() first"
            )
        return self._convert_id

    def _fail(self, message: str) -> None:
        self.step = ConversionStep.ERROR.value
        self.error_message = message


# ---------------------------------------------------------------------------
# Response helpers (module-private)
# ---------------------------------------------------------------------------


def _parse(model: type[_Model], response: Any) -> _Model:
    """Parse the ``data`` object of a Convertio envelope into ``model``."""
    data = response.get("data") if isinstance(response, dict) else None
    if not isinstance(data, dict):
        raise ProtocolError(f"Unexpected Convertio response: {response!r:.200}")
    try:
        return model.from_dict(data)  # type: ignore[attr-defined]
    except KeyError as exc:
        raise ProtocolError(f"Convertio response is missing field {exc}") from exc


def _decode_content(response: Any) -> bytes:
    data = response.get("data") if isinstance(response, dict) else None
    encoded = data.get("content") if isinstance(data, dict) else None
    if not encoded:
        return b""
    try:
        return base64.b64decode(encoded)
    except (binascii.Error, ValueError):
        return b""
