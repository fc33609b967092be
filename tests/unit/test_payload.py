"""
UNIT TESTS FOR THE DOCUMENT PAYLOAD EXTRACTOR

How to Execute tests:
    pytest tests/unit/test_payload.py -v
"""

from pathlib import Path

import pytest

import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from filings.payload import (
    PayloadFormat,
    classify_payload,
    decode_filing,
    extract_payload,
    isolate_document,
    read_filing,
)

HTML_FILING = """<SEC-DOCUMENT>0000000001-10-000001.txt
<DOCUMENT>
<TYPE>10-K
<TEXT>
<html>
<head><style>p { color: red; }</style><script>var hidden = 1;</script></head>
<body>
<!-- printer marks -->
<p>Item 1.&nbsp;&nbsp;Business</p>
<p>We sell   café equipment.</p>
</body>
</html>
</TEXT>
</DOCUMENT>
<DOCUMENT>
<TYPE>EX-99
<TEXT>
<html><body><p>Exhibit text</p></body></html>
</TEXT>
</DOCUMENT>
"""

XBRL_FILING = """<DOCUMENT>
<TYPE>10-K
<TEXT>
<XBRL>
<html>
<body>
<div style="display:none">us-gaap:SegmentsMember</div>
<p>ANNUAL REPORT PURSUANT TO SECTION 13</p>
<p>Item 1. Business</p>
</body>
</html>
</XBRL>
</TEXT>
</DOCUMENT>
"""


class TestIsolateDocument:
    """Tests for finding the primary document."""

    def test_first_document_block_with_markers(self):
        lines = ["header", "<DOCUMENT>", "one", "</DOCUMENT>", "<DOCUMENT>", "two", "</DOCUMENT>"]

        assert isolate_document(lines) == ["<DOCUMENT>", "one", "</DOCUMENT>"]

    def test_text_markers_when_no_document_block(self):
        lines = ["header", "<TEXT>", "body", "</TEXT>", "trailer"]

        assert isolate_document(lines) == ["<TEXT>", "body", "</TEXT>"]

    def test_no_markers_keeps_everything(self):
        lines = ["just", "text"]

        assert isolate_document(lines) == lines


class TestClassifyPayload:
    """The format is chosen once per document."""

    @pytest.mark.parametrize(
        "lines,expected",
        [
            (["plain words"], PayloadFormat.PLAIN),
            (["<HTML>", "<body>"], PayloadFormat.MARKUP),
            (["<TYPE>XML"], PayloadFormat.MARKUP),
            (["<FILENAME>form10k.htm"], PayloadFormat.MARKUP),
            (["<XBRL>", "<html>"], PayloadFormat.XBRL_WRAPPED),
        ],
    )
    def test_classification(self, lines, expected):
        assert classify_payload(lines) == expected


class TestExtractPayload:
    """Tests for the normalized text of each format."""

    def test_plain_filing_keeps_first_document_only(self, plain_10k):
        text = extract_payload(plain_10k)

        assert "ITEM 1.  BUSINESS" in text
        assert "Subsidiaries of the registrant" not in text
        assert "CONFORMED SUBMISSION TYPE" not in text

    def test_markup_keeps_visible_text_only(self):
        text = extract_payload(HTML_FILING)
        lines = text.splitlines()

        assert "Item 1. Business" in lines
        assert "We sell cafe equipment." in lines
        assert "hidden" not in text
        assert "color" not in text
        assert "printer marks" not in text
        assert "Exhibit text" not in text

    def test_output_is_ascii(self):
        text = extract_payload(HTML_FILING)

        assert text.isascii()

    def test_xbrl_preamble_dropped_only_for_search(self):
        full = extract_payload(XBRL_FILING)
        searchable = extract_payload(XBRL_FILING, for_search=True)

        assert "SegmentsMember" in full
        assert "SegmentsMember" not in searchable
        assert searchable.splitlines()[0] == "ANNUAL REPORT PURSUANT TO SECTION 13"
        assert "Item 1. Business" in searchable


class TestReadFiling:
    """Tests for reading cached files."""

    def test_utf8_and_latin1_are_both_decoded(self):
        assert decode_filing("café".encode("utf-8")) == "café"
        assert decode_filing("café".encode("latin-1")) == "café"

    def test_read_filing_from_disk(self, tmp_path, plain_10k):
        path = tmp_path / "filing.txt"
        path.write_text(plain_10k, encoding="latin-1")

        assert read_filing(path) == extract_payload(plain_10k)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            read_filing(tmp_path / "nope.txt")
