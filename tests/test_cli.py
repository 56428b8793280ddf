"""Tests for the convertio command-line interface.

WHY: The CLI is the quickest way to use the client. A broken default
output name, a leaked remote conversion or a wrong exit code would hit
users directly.

HOW: The parser and path helpers are tested directly. Full runs go
through main() with the Conversion factory patched to use FakeConvertio,
so the whole start/wait/download/delete pipeline runs without network.

RULES:
- main() always ends in SystemExit; tests assert on its code
- Status messages are read from stderr via capsys
"""

from __future__ import annotations

from pathlib import Path

import pytest

from convertio_client import cli
from convertio_client.conversion import Conversion
from tests.conftest import CONVERT_ID, content_response, error, ok, status_response


@pytest.fixture
def patched_conversion(monkeypatch, fake_service):
    """Make cli.main() build Conversions wired to the fake service."""
    created = []

    def factory(api_key, options):
        conversion = Conversion(api_key, options, transport=fake_service.transport)
        created.append(conversion)
        return conversion

    monkeypatch.setattr(cli, "Conversion", factory)
    return created


def _script_success(fake_service, filename="notes.txt", content=b"%PDF converted"):
    fake_service.add("POST", "/convert", ok({"id": CONVERT_ID, "minutes": 1}))
    fake_service.add("PUT", "/convert/{}/{}".format(CONVERT_ID, filename), ok({"id": CONVERT_ID, "size": 5}))
    fake_service.add("GET", "/convert/{}/status".format(CONVERT_ID),
                     status_response("finish", 100, {"url": "https://cdn/x.pdf", "size": len(content)}))
    fake_service.add("GET", "/convert/{}/dl/base64".format(CONVERT_ID), content_response(content))
    fake_service.add("DELETE", "/convert/{}".format(CONVERT_ID), ok())


class TestParser:
    """build_parser() exposes the documented flags."""

    def test_positional_arguments(self):
        args = cli.build_parser().parse_args(["in.docx", "pdf"])
        assert args.source == "in.docx"
        assert args.output_format == "pdf"
        assert args.keep is False
        assert args.protocol is None

    def test_transport_flags(self):
        args = cli.build_parser().parse_args([
            "in.docx", "pdf", "--protocol", "http",
            "--connect-timeout", "3", "--total-timeout", "60",
        ])
        assert cli._transport_options(args) == {
            "protocol": "http", "connect_timeout": 3, "total_timeout": 60,
        }

    def test_invalid_protocol_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["in.docx", "pdf", "--protocol", "ftp"])


class TestResolveOutputPath:

    def test_explicit_output_wins(self):
        assert cli.resolve_output_path("a.docx", "pdf", output="x/y.pdf") == Path("x/y.pdf")

    def test_next_to_local_source(self):
        assert cli.resolve_output_path("docs/report.docx", "PDF") == Path("docs/report.pdf")

    def test_output_dir(self):
        assert cli.resolve_output_path("docs/report.docx", "pdf", output_dir="out") == Path("out/report.pdf")

    def test_url_source_uses_cwd(self):
        path = cli.resolve_output_path("https://example.com/files/scan.png?x=1", "jpg")
        assert path == Path.cwd() / "scan.jpg"

    def test_url_without_name(self):
        path = cli.resolve_output_path("https://example.com/", "pdf", output_dir="out")
        assert path == Path("out/converted.pdf")


class TestMain:
    """main() runs the full pipeline and maps outcomes to exit codes."""

    def test_successful_conversion(self, tmp_path, fake_service, patched_conversion, capsys):
        source = tmp_path / "notes.txt"
        source.write_text("hello")
        _script_success(fake_service)

        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(source), "pdf", "--api-key", "k"])

        assert exc_info.value.code == 0
        assert (tmp_path / "notes.pdf").read_bytes() == b"%PDF converted"
        assert len(fake_service.calls("DELETE")) == 1
        assert "Saved:" in capsys.readouterr().err

    def test_keep_skips_remote_delete(self, tmp_path, fake_service, patched_conversion):
        source = tmp_path / "notes.txt"
        source.write_text("hello")
        _script_success(fake_service)

        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(source), "pdf", "--api-key", "k", "--keep", "-o", str(tmp_path / "r.pdf")])

        assert exc_info.value.code == 0
        assert (tmp_path / "r.pdf").exists()
        assert fake_service.calls("DELETE") == []

    def test_refused_conversion_exits_1(self, tmp_path, fake_service, patched_conversion, capsys):
        source = tmp_path / "notes.txt"
        source.write_text("hello")
        fake_service.add("POST", "/convert", error("Output format not supported"))

        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(source), "xyz", "--api-key", "k"])

        assert exc_info.value.code == 1
        assert fake_service.calls("PUT") == []
        assert fake_service.calls("DELETE") == []
        assert "Output format not supported" in capsys.readouterr().err

    def test_failed_download_still_deletes(self, tmp_path, fake_service, patched_conversion):
        source = tmp_path / "notes.txt"
        source.write_text("hello")
        fake_service.add("POST", "/convert", ok({"id": CONVERT_ID}))
        fake_service.add("PUT", "/convert/{}/notes.txt".format(CONVERT_ID), ok({"id": CONVERT_ID}))
        fake_service.add("GET", "/convert/{}/status".format(CONVERT_ID), status_response("finish", 100))
        fake_service.add("GET", "/convert/{}/dl/base64".format(CONVERT_ID), ok({"content": ""}))
        fake_service.add("DELETE", "/convert/{}".format(CONVERT_ID), ok())

        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(source), "pdf", "--api-key", "k"])

        assert exc_info.value.code == 1
        assert not (tmp_path / "notes.pdf").exists()
        assert len(fake_service.calls("DELETE")) == 1

    def test_url_source(self, tmp_path, fake_service, patched_conversion):
        fake_service.add("POST", "/convert", ok({"id": CONVERT_ID}))
        fake_service.add("GET", "/convert/{}/status".format(CONVERT_ID), status_response("finish", 100))
        fake_service.add("GET", "/convert/{}/dl/base64".format(CONVERT_ID), content_response(b"img"))
        fake_service.add("DELETE", "/convert/{}".format(CONVERT_ID), ok())

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["https://example.com/a.png", "jpg", "--api-key", "k", "--output-dir", str(tmp_path)])

        assert exc_info.value.code == 0
        assert (tmp_path / "a.jpg").read_bytes() == b"img"
        assert fake_service.json_body(fake_service.calls("POST")[0])["input"] == "url"

    def test_missing_file_exits_1(self, tmp_path, fake_service, patched_conversion):
        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(tmp_path / "missing.txt"), "pdf", "--api-key", "k"])

        assert exc_info.value.code == 1
        assert fake_service.requests == []

    def test_missing_api_key_exits_2(self, tmp_path, fake_service, patched_conversion, capsys):
        source = tmp_path / "notes.txt"
        source.write_text("hello")

        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(source), "pdf"])

        assert exc_info.value.code == 2
        assert "CONVERTIO_API_KEY" in capsys.readouterr().err
