"""
Tests for A1 notation helpers.
"""
import pytest

from lib.sheet_utils import (
    a1_range,
    cell_ref,
    col_letter_to_index,
    format_grid_range,
    index_to_col_letter,
    quote_sheet_title,
)


class TestColumnLetters:
    """Tests for bijective base-26 column conversion"""

    @pytest.mark.parametrize("index,letter", [
        (0, "A"),
        (1, "B"),
        (25, "Z"),
        (26, "AA"),
        (27, "AB"),
        (51, "AZ"),
        (52, "BA"),
        (701, "ZZ"),
        (702, "AAA"),
    ])
    def test_index_to_letter(self, index, letter):
        assert index_to_col_letter(index) == letter

    @pytest.mark.parametrize("letter,index", [("A", 0), ("z", 25), ("AA", 26), ("ZZ", 701), ("AAA", 702)])
    def test_letter_to_index(self, letter, index):
        assert col_letter_to_index(letter) == index

    def test_inverse_over_first_thousand_columns(self):
        for i in range(1000):
            assert col_letter_to_index(index_to_col_letter(i)) == i

    def test_negative_index_rejected(self):
        with pytest.raises(ValueError):
            index_to_col_letter(-1)

    @pytest.mark.parametrize("bad", ["", "A1", "1", "A-B"])
    def test_invalid_letters_rejected(self, bad):
        with pytest.raises(ValueError):
            col_letter_to_index(bad)


class TestRanges:
    """Tests for range building"""

    def test_cell_ref(self):
        assert cell_ref(0, 0) == "A1"
        assert cell_ref(9, 26) == "AA10"

    def test_quote_sheet_title_escapes_quotes(self):
        assert quote_sheet_title("Bob's Data") == "'Bob''s Data'"

    def test_a1_range(self):
        assert a1_range("Sheet1", 3, 101) == "'Sheet1'!A1:C101"

    def test_a1_range_never_empty(self):
        assert a1_range("Empty", 0, 0) == "'Empty'!A1:A1"

    def test_format_grid_range(self):
        grid = {"sheetId": 7, "startRowIndex": 0, "endRowIndex": 10, "startColumnIndex": 1, "endColumnIndex": 3}
        assert format_grid_range(grid) == "B1:C10"
        assert format_grid_range(grid, {7: "Data"}) == "'Data'!B1:C10"

    def test_format_grid_range_missing(self):
        assert format_grid_range(None) == "Unknown"
