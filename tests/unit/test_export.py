"""Unit tests for CSV export."""

import csv
import io

import pytest

from quiz_analytics.export import BOM, DIAGNOSIS_COLUMNS, to_csv


def _parse(text):
    assert text.startswith(BOM)
    return list(csv.reader(io.StringIO(text[len(BOM):])))


class TestToCsv:
    @pytest.mark.unit
    def test_embedded_quote_is_doubled_and_round_trips(self):
        rows = [{
            "id": 7,
            "type_code": "T1",
            "type_name": 'O"Brien',
            "scores": '{"a": 1}',
            "user_agent": "ua",
            "created_at": "2024-01-01T15:00:00.000+00:00",
        }]

        text = to_csv(rows, DIAGNOSIS_COLUMNS)

        assert '"O""Brien"' in text
        parsed = _parse(text)
        assert parsed[1][2] == 'O"Brien'
        assert parsed[1][3] == '{"a": 1}'

    @pytest.mark.unit
    def test_header_and_bare_numbers(self):
        rows = [{"id": 1, "type_code": "T1", "type_name": "Alpha", "scores": None,
                 "user_agent": None, "created_at": "2024-01-01T00:00:00.000+00:00"}]

        text = to_csv(rows, DIAGNOSIS_COLUMNS)
        lines = text[len(BOM):].splitlines()

        assert lines[0] == '"ID","Type code","Type name","Scores","User agent","Created at"'
        assert lines[1].startswith('1,"T1","Alpha","",""')

    @pytest.mark.unit
    def test_empty_rows_still_have_header(self):
        parsed = _parse(to_csv([], DIAGNOSIS_COLUMNS))
        assert parsed == [[header for _, header in DIAGNOSIS_COLUMNS]]

    @pytest.mark.unit
    def test_commas_and_newlines_survive(self):
        rows = [{"id": 2, "type_code": "T2", "type_name": "a, b\nc", "scores": "",
                 "user_agent": "", "created_at": ""}]

        parsed = _parse(to_csv(rows, DIAGNOSIS_COLUMNS))

        assert parsed[1][2] == "a, b\nc"
