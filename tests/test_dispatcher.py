"""Tests for mail2print.dispatcher."""

from __future__ import annotations

from pathlib import Path

import pytest

from mail2print.converters.registry import ConverterRegistry
from mail2print.dispatcher import Dispatcher
from mail2print.errors import ParseError
from mail2print.parser import MimeParser
from mail2print.spool import FileSpool

from tests.conftest import PDF_BYTES, ClaimErrorConverter, FakeConverter, FakePrintSink, _make_message

DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _dispatcher(
    *,
    spool: FileSpool | None = None,
    sink: FakePrintSink | None = None,
    plugins: list | None = None,
) -> Dispatcher:
    return Dispatcher(
        MimeParser(),
        ConverterRegistry(plugins or []),
        spool=spool,
        print_sink=sink,
        printer="P1" if sink is not None else None,
    )


class TestDispatcherConstruction:
    def test_printer_requires_sink(self):
        with pytest.raises(ValueError):
            Dispatcher(MimeParser(), ConverterRegistry(), printer="P1")


class TestDispatcherPrinting:
    @pytest.mark.asyncio
    async def test_pdf_fast_path(self, print_sink: FakePrintSink):
        plugin = FakeConverter(suffixes=(".pdf",))
        dispatcher = _dispatcher(sink=print_sink, plugins=[plugin])
        message = _make_message(attachments=[("invoice.pdf", "application/pdf", PDF_BYTES)])

        outcome = await dispatcher.process(message)

        assert outcome.processed
        assert outcome.printed == 1
        assert print_sink.jobs == [("P1", PDF_BYTES, "invoice.pdf")]
        assert plugin.can_convert_calls == []

    @pytest.mark.asyncio
    async def test_convert_path_prints_and_spools(self, print_sink: FakePrintSink, output_dir: Path):
        plugin = FakeConverter(suffixes=(".docx",), output=b"%PDF-quote")
        dispatcher = _dispatcher(spool=FileSpool(output_dir), sink=print_sink, plugins=[plugin])
        message = _make_message(
            subject="Quote",
            attachments=[("quote.docx", DOCX_TYPE, b"docx-bytes")],
        )

        outcome = await dispatcher.process(message)

        assert outcome.processed
        assert outcome.spooled == [output_dir / "quote.docx"]
        assert (output_dir / "quote.docx").read_bytes() == b"docx-bytes"
        assert print_sink.jobs == [("P1", b"%PDF-quote", "quote.docx")]
        assert plugin.convert_calls == [(b"docx-bytes", DOCX_TYPE, "quote.docx", "Quote")]

    @pytest.mark.asyncio
    async def test_unsupported_attachment_is_not_processed(self, print_sink: FakePrintSink):
        dispatcher = _dispatcher(sink=print_sink)
        message = _make_message(attachments=[("meme.gif", "image/gif", b"GIF89a")])

        outcome = await dispatcher.process(message)

        assert not outcome.processed
        assert outcome.skipped == 1
        assert print_sink.jobs == []

    @pytest.mark.asyncio
    async def test_one_success_is_enough(self, print_sink: FakePrintSink):
        dispatcher = _dispatcher(sink=print_sink)
        message = _make_message(
            attachments=[
                ("a.pdf", "application/pdf", PDF_BYTES),
                ("b.xyz", "application/octet-stream", b"???"),
            ],
        )

        outcome = await dispatcher.process(message)

        assert outcome.processed
        assert outcome.printed == 1
        assert outcome.skipped == 1

    @pytest.mark.asyncio
    async def test_print_error_leaves_message_unprocessed(self):
        sink = FakePrintSink(fail=True)
        dispatcher = _dispatcher(sink=sink)
        message = _make_message(attachments=[("a.pdf", "application/pdf", PDF_BYTES)])

        outcome = await dispatcher.process(message)

        assert not outcome.processed
        assert outcome.printed == 0

    @pytest.mark.asyncio
    async def test_conversion_failure_is_skipped(self, print_sink: FakePrintSink):
        dispatcher = _dispatcher(sink=print_sink, plugins=[FakeConverter(fail=True)])
        message = _make_message(attachments=[("letter.docx", DOCX_TYPE, b"doc")])

        outcome = await dispatcher.process(message)

        assert not outcome.processed
        assert print_sink.jobs == []

    @pytest.mark.asyncio
    async def test_untitled_attachment_uses_subject_as_job_title(self, print_sink: FakePrintSink):
        dispatcher = _dispatcher(sink=print_sink)
        message = _make_message(subject="Scan", attachments=[(None, "application/pdf", PDF_BYTES)])

        await dispatcher.process(message)

        assert print_sink.jobs[0][2] == "Scan"

    @pytest.mark.asyncio
    async def test_claiming_plugin_error_does_not_stop_the_message(self, print_sink: FakePrintSink):
        dispatcher = _dispatcher(sink=print_sink, plugins=[ClaimErrorConverter("broken")])
        message = _make_message(
            attachments=[
                ("b.xyz", "application/octet-stream", b"???"),
                ("a.pdf", "application/pdf", PDF_BYTES),
            ],
        )

        outcome = await dispatcher.process(message)

        assert outcome.processed
        assert outcome.printed == 1
        assert print_sink.jobs == [("P1", PDF_BYTES, "a.pdf")]

    @pytest.mark.asyncio
    async def test_unexpected_sink_error_is_contained(self):
        class BrokenSink(FakePrintSink):
            def print_pdf(self, data: bytes, printer: str, *, title: str = "mail2print") -> None:
                if title == "first.pdf":
                    raise RuntimeError("driver crashed")
                super().print_pdf(data, printer, title=title)

        sink = BrokenSink()
        dispatcher = _dispatcher(sink=sink)
        message = _make_message(
            attachments=[
                ("first.pdf", "application/pdf", PDF_BYTES),
                ("second.pdf", "application/pdf", PDF_BYTES),
            ],
        )

        outcome = await dispatcher.process(message)

        assert outcome.processed
        assert outcome.printed == 1
        assert sink.jobs == [("P1", PDF_BYTES, "second.pdf")]


class TestDispatcherSpool:
    @pytest.mark.asyncio
    async def test_collisions_across_messages(self, output_dir: Path):
        dispatcher = _dispatcher(spool=FileSpool(output_dir))
        first = _make_message("1", attachments=[("report.pdf", "application/pdf", b"one")])
        second = _make_message("2", attachments=[("report.pdf", "application/pdf", b"two")])

        await dispatcher.process(first)
        await dispatcher.process(second)

        assert sorted(p.name for p in output_dir.iterdir()) == ["1report.pdf", "report.pdf"]
        assert (output_dir / "report.pdf").read_bytes() == b"one"
        assert (output_dir / "1report.pdf").read_bytes() == b"two"

    @pytest.mark.asyncio
    async def test_spool_accepts_any_type(self, output_dir: Path):
        dispatcher = _dispatcher(spool=FileSpool(output_dir))
        message = _make_message(attachments=[("meme.gif", "image/gif", b"GIF89a")])

        outcome = await dispatcher.process(message)

        assert outcome.processed
        assert (output_dir / "meme.gif").read_bytes() == b"GIF89a"

    @pytest.mark.asyncio
    async def test_nameless_attachment_is_spooled_as_unknown(self, output_dir: Path):
        dispatcher = _dispatcher(spool=FileSpool(output_dir))
        message = _make_message(attachments=[(None, "application/octet-stream", b"\x00")])

        outcome = await dispatcher.process(message)

        assert outcome.spooled == [output_dir / "unknown"]

    @pytest.mark.asyncio
    async def test_spool_error_with_successful_print(self, tmp_path: Path, print_sink: FakePrintSink):
        dispatcher = _dispatcher(spool=FileSpool(tmp_path / "vanished"), sink=print_sink)
        message = _make_message(attachments=[("a.pdf", "application/pdf", PDF_BYTES)])

        outcome = await dispatcher.process(message)

        assert outcome.spooled == []
        assert outcome.printed == 1
        assert outcome.processed

    @pytest.mark.asyncio
    async def test_overlong_name_is_spooled_and_printed(self, output_dir: Path, print_sink: FakePrintSink):
        dispatcher = _dispatcher(spool=FileSpool(output_dir), sink=print_sink)
        message = _make_message(attachments=[("a" * 300 + ".pdf", "application/pdf", PDF_BYTES)])

        outcome = await dispatcher.process(message)

        assert outcome.processed
        assert outcome.printed == 1
        assert len(outcome.spooled) == 1
        assert outcome.spooled[0].name.endswith(".pdf")
        assert outcome.spooled[0].read_bytes() == PDF_BYTES


class TestDispatcherParseFailure:
    @pytest.mark.asyncio
    async def test_parse_error_is_unprocessed(self, print_sink: FakePrintSink, monkeypatch):
        def broken(raw: bytes):
            raise ParseError("unknown charset")

        dispatcher = _dispatcher(sink=print_sink)
        monkeypatch.setattr(dispatcher._parser, "attachments", broken)

        outcome = await dispatcher.process(_make_message())

        assert not outcome.processed
        assert print_sink.jobs == []

    @pytest.mark.asyncio
    async def test_message_without_attachments(self, print_sink: FakePrintSink):
        outcome = await _dispatcher(sink=print_sink).process(_make_message())
        assert not outcome.processed
        assert outcome.skipped == 0
