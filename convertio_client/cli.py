"""Command-line interface for the Convertio client.

WHY: Converting a single file should not require writing Python. The CLI
wires the whole Conversion workflow (start, wait, download, delete) behind
one command.

HOW: Uses argparse to accept a source (local path or URL), an output
format, transport options and an output location. Runs the async pipeline
via asyncio.run(). Status messages go to stderr; the result file is saved
next to the source (or to --output / --output-dir). The remote conversion
is deleted afterwards unless --keep is given.

RULES:
- Positional arguments: source (path or http(s) URL), output_format
- Sources starting with http:// or https:// use start_from_url()
- Default output name: {source stem}.{output_format}
- Status output goes to stderr (not stdout)
- Exit code 1 on any conversion failure
- Remote cleanup is best-effort and never masks the real error
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path, PurePosixPath
from typing import List, Optional
from urllib.parse import urlparse

from convertio_client.config import OPTION_KEYS
from convertio_client.conversion import Conversion, ConversionStep
from convertio_client.errors import ConvertioError

logger = logging.getLogger(__name__)


def _status(msg: str) -> None:
    """Print a status message to stderr, flushed immediately."""
    print(msg, file=sys.stderr, flush=True)


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def resolve_output_path(
    source: str,
    output_format: str,
    output: Optional[str] = None,
    output_dir: Optional[str] = None,
) -> Path:
    """Work out where the converted file should be written.

    RULES:
    - --output wins over everything
    - Otherwise {stem}.{format} in --output-dir, else next to a local
      source, else in the current directory for URLs
    - A URL without a usable file name falls back to "converted"
    """
    if output:
        return Path(output)

    if is_url(source):
        stem = PurePosixPath(urlparse(source).path).stem or "converted"
        default_dir = Path.cwd()
    else:
        stem = Path(source).stem
        default_dir = Path(source).parent

    directory = Path(output_dir) if output_dir else default_dir
    return directory / "{}.{}".format(stem, output_format.lower())


def _transport_options(args: argparse.Namespace) -> dict:
    options = {}
    for key in OPTION_KEYS:
        value = getattr(args, key, None)
        if value is not None:
            options[key] = value
    return options


async def _run_pipeline(args: argparse.Namespace) -> int:
    """Run one conversion end to end and return the process exit code."""
    conversion = Conversion(args.api_key, _transport_options(args))
    target = resolve_output_path(args.source, args.output_format, args.output, args.output_dir)

    async with conversion:
        try:
            if is_url(args.source):
                _status("Starting conversion of {}...".format(args.source))
                await conversion.start_from_url(args.source, args.output_format)
            else:
                _status("Uploading {}...".format(args.source))
                await conversion.start(args.source, args.output_format)

            if conversion.step == ConversionStep.ERROR:
                _status("Error: {}".format(conversion.error_message))
                return 1

            _status("Converting (id {})...".format(conversion.convert_id))
            await conversion.wait(timeout=args.wait_timeout, on_status=_status)

            if conversion.step == ConversionStep.ERROR:
                _status("Error: {}".format(conversion.error_message))
                return 1

            target.parent.mkdir(parents=True, exist_ok=True)
            await conversion.download(target)
            _status("Saved: {} ({} bytes)".format(target, len(conversion.result_content or b"")))
            return 0
        except (ConvertioError, OSError) as e:
            _status("Error: {}".format(e))
            return 1
        finally:
            if conversion.convert_id and not args.keep:
                try:
                    await conversion.delete()
                except ConvertioError:
                    logger.warning("Failed to delete conversion %s", conversion.convert_id)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable; tests can inspect the parser without running the pipeline.
    """
    parser = argparse.ArgumentParser(
        prog="convertio",
        description="Convert a local file or URL with the Convertio API and "
                    "download the result.",
    )

    parser.add_argument(
        "source",
        help="Path to a local file, or an http(s) URL of a file or web page.",
    )

    parser.add_argument(
        "output_format",
        help="Target format, e.g. pdf, docx, png.",
    )

    parser.add_argument(
        "-o", "--output",
        default=None,
        help="Path of the converted file (default: <source stem>.<format>).",
    )

    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save the converted file (default: next to the source).",
    )

    parser.add_argument(
        "--api-key",
        default=None,
        help="Convertio API key (default: CONVERTIO_API_KEY from the environment/.env).",
    )

    parser.add_argument(
        "--protocol",
        choices=["http", "https"],
        default=None,
        help="Protocol used to reach the API (default: https).",
    )

    parser.add_argument(
        "--connect-timeout",
        dest="connect_timeout",
        type=int,
        default=None,
        help="Connect timeout in seconds, 0 for none (default: 10).",
    )

    parser.add_argument(
        "--total-timeout",
        dest="total_timeout",
        type=int,
        default=None,
        help="Per-request timeout in seconds, 0 for none (default: 0).",
    )

    parser.add_argument(
        "--wait-timeout",
        type=float,
        default=None,
        help="Give up waiting for the conversion after this many seconds.",
    )

    parser.add_argument(
        "--keep",
        action="store_true",
        help="Do not delete the conversion from Convertio after downloading.",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``python -m convertio_client`` and the ``convertio`` script.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    - Configuration errors (missing key, bad option) exit with code 2
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not is_url(args.source) and not Path(args.source).is_file():
        _status("Error: file not found: {}".format(args.source))
        sys.exit(1)

    try:
        exit_code = asyncio.run(_run_pipeline(args))
    except ConvertioError as e:
        _status("Error: {}".format(e))
        sys.exit(2)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
