import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from openpyxl import load_workbook

from tools.export_series_to_excel import SeriesExcelExporter
from tools.generate_series_report import SeriesReportGenerator
from tools.series_detection import PARTIAL_DETECTION_MESSAGE, InMemorySeriesStore, run_series_detection
from tools.series_models import VideoRecord

NOW = datetime(2025, 6, 1)


def detection_fixture(llm_call):
    videos = [
        VideoRecord(
            external_id=f"gear{n:02d}",
            title=f"Gear Review Ep {n}",
            published_at=NOW - timedelta(days=100 - 7 * n),
            channel="Gear Channel",
            view_count=1000 * n,
            like_count=10,
        )
        for n in range(1, 6)
    ]
    videos += [
        VideoRecord(
            external_id=f"misc{n}",
            title=title,
            published_at=NOW - timedelta(days=30 + n),
            channel="Gear Channel",
            view_count=50 + n,
        )
        for n, title in enumerate(["Studio tour", "Answering questions", "Lens cleaning", "Why I quit", "Desk setup"])
    ]
    summary = run_series_detection("run", "gear-channel", videos, InMemorySeriesStore(), llm_call, now=NOW)
    return [video.to_dict() for video in videos], summary.to_dict()


def failing_llm(*_args, **_kwargs):
    raise RuntimeError("no key")


class MarkdownReportTests(unittest.TestCase):
    def test_report_sections(self):
        videos, detection = detection_fixture(failing_llm)
        report = SeriesReportGenerator(videos, detection).generate()

        self.assertIn("**Channel:** Gear Channel", report)
        self.assertIn("- Series detected: 1 (1 from title patterns, 0 from AI clustering)", report)
        self.assertIn(f"> ⚠️ {PARTIAL_DETECTION_MESSAGE}", report)
        self.assertIn("> Reason: no key", report)
        self.assertIn("| Gear Review | pattern | 5 | 15,000 |", report)
        self.assertIn("every 7 days", report)
        self.assertIn("## Uncategorized Videos (5)", report)
        self.assertIn("- Desk setup (54 views)", report)

    def test_report_without_series(self):
        report = SeriesReportGenerator([], {"series": []}).generate()
        self.assertIn("No recurring series were detected.", report)
        self.assertNotIn("## Series Details", report)


class ExcelExportTests(unittest.TestCase):
    def test_workbook_tabs(self):
        videos, detection = detection_fixture(failing_llm)
        with tempfile.TemporaryDirectory() as temp_dir:
            path = SeriesExcelExporter(videos, detection).export(Path(temp_dir) / "out" / "series_report.xlsx")
            workbook = load_workbook(path)

            self.assertEqual(workbook.sheetnames, ["Summary", "Series", "Uncategorized"])

            series_sheet = workbook["Series"]
            self.assertEqual(series_sheet.cell(row=3, column=1).value, "Gear Review")
            self.assertEqual(series_sheet.cell(row=3, column=4).value, 5)
            self.assertEqual(series_sheet.cell(row=3, column=5).value, 15000)

            uncategorized = workbook["Uncategorized"]
            self.assertEqual(uncategorized.max_row, 7)
            self.assertEqual(uncategorized.cell(row=3, column=2).value, "Desk setup")

            summary_values = {row[0].value: row[1].value for row in workbook["Summary"].iter_rows(min_row=4) if len(row) > 1}
            self.assertEqual(summary_values["AI Step Skipped"], "Yes")
            self.assertEqual(summary_values["Uncategorized Videos"], 5)


if __name__ == "__main__":
    unittest.main()
