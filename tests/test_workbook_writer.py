from io import BytesIO

from openpyxl import load_workbook

from huvr_export.services.export_planner import Sheet, Workbook
from huvr_export.services.workbook_writer import sheet_frame, sheet_title, write_workbook


def load(content):
    return load_workbook(BytesIO(content))


class TestSheetTitle:
    def test_truncated_to_excel_limit(self):
        assert sheet_title("Inspection media for every project in 2024", set()) == "Inspection media for every proj"

    def test_invalid_characters_replaced(self):
        assert sheet_title("Q1/Q2: Defects?", set()) == "Q1_Q2_ Defects_"

    def test_duplicates_get_a_counter(self):
        used = set()
        assert sheet_title("Defects", used) == "Defects"
        assert sheet_title("defects", used) == "defects (2)"
        assert sheet_title("Defects", used) == "Defects (3)"

    def test_blank_name(self):
        assert sheet_title("  ", set()) == "Sheet"

    def test_counter_fits_within_limit(self):
        used = set()
        name = "x" * 40
        sheet_title(name, used)
        second = sheet_title(name, used)
        assert len(second) == 31
        assert second.endswith(" (2)")


class TestSheetFrame:
    def test_duplicate_headers_are_kept(self):
        frame = sheet_frame(Sheet("S", "Asset", ["Name", "Name"], [["a", "b"]]))
        assert list(frame.columns) == ["Name", "Name"]
        assert frame.iloc[0].tolist() == ["a", "b"]


class TestWriteWorkbook:
    def test_single_sheet(self):
        sheet = Sheet("Project", "Project", ["Name", "Asset"], [["Q1", "Pump"], ["Q2", ""]])
        book = load(write_workbook(Workbook([sheet])))
        assert book.sheetnames == ["Project"]
        rows = list(book["Project"].iter_rows(values_only=True))
        assert rows[0] == ("Name", "Asset")
        assert rows[1] == ("Q1", "Pump")
        assert rows[2][0] == "Q2"
        assert rows[2][1] in (None, "")
        assert book["Project"]["A1"].font.bold

    def test_header_at_start_row(self):
        sheet = Sheet("Defects", "Defect", ["Title"], [["Pitting"]], start_row=3)
        worksheet = load(write_workbook(Workbook([sheet])))["Defects"]
        assert worksheet["A1"].value is None
        assert worksheet["A3"].value == "Title"
        assert worksheet["A4"].value == "Pitting"
        assert worksheet["A3"].font.bold

    def test_leading_equals_is_written_as_text(self):
        sheet = Sheet(
            "Defects",
            "Defect",
            ["=Title", "Severity"],
            [["=1+1", "High"], ['=HYPERLINK("http://x")', "Low"]],
            start_row=2,
        )
        worksheet = load(write_workbook(Workbook([sheet])))["Defects"]
        assert worksheet["A2"].value == "=Title"
        assert worksheet["A2"].data_type == "s"
        assert worksheet["A3"].value == "=1+1"
        assert worksheet["A3"].data_type == "s"
        assert worksheet["A4"].value == '=HYPERLINK("http://x")'
        assert worksheet["A4"].data_type == "s"
        assert worksheet["B3"].value == "High"

    def test_sheet_names_are_made_unique(self):
        workbook = Workbook([
            Sheet("Defects", "Defect", ["Title"], [["a"]]),
            Sheet("Defects", "Defect", ["Title"], [["b"]]),
        ])
        book = load(write_workbook(workbook))
        assert book.sheetnames == ["Defects", "Defects (2)"]
        assert book["Defects (2)"]["A2"].value == "b"
