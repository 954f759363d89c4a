#!/usr/bin/env python3
"""
Series Excel Exporter
Creates a workbook with Summary, Series and Uncategorized tabs.

Usage:
    python3 -m tools.export_series_to_excel path/to/videos.json path/to/series.json [output.xlsx]
"""

import json
import sys
from datetime import datetime
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter


TITLE_FILL = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")
HEADER_FILL = PatternFill(start_color="D9D9D9", end_color="D9D9D9", fill_type="solid")
SECTION_FILL = PatternFill(start_color="EEF3F8", end_color="EEF3F8", fill_type="solid")
TREND_FILLS = {
    "growing": PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid"),
    "declining": PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid"),
}


def autosize_columns(worksheet, max_width=80):
    """Auto-size columns to content width with a reasonable cap."""
    widths = {}
    for row in worksheet.iter_rows():
        for cell in row:
            value = cell.value
            if value is None:
                continue
            length = len(str(value))
            widths[cell.column] = max(widths.get(cell.column, 0), length)

    for col_idx, width in widths.items():
        worksheet.column_dimensions[get_column_letter(col_idx)].width = min(max(width + 2, 10), max_width)


def style_title_row(worksheet, end_column):
    """Style and merge row 1 as title."""
    worksheet.merge_cells(start_row=1, start_column=1, end_row=1, end_column=end_column)
    cell = worksheet.cell(row=1, column=1)
    cell.fill = TITLE_FILL
    cell.font = Font(bold=True, color="FFFFFF", size=13)
    cell.alignment = Alignment(horizontal="center", vertical="center")


def style_header_row(worksheet, row_idx, end_column):
    for col in range(1, end_column + 1):
        cell = worksheet.cell(row=row_idx, column=col)
        cell.fill = HEADER_FILL
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def style_section_row(worksheet, row_idx, end_column):
    for col in range(1, end_column + 1):
        cell = worksheet.cell(row=row_idx, column=col)
        cell.fill = SECTION_FILL
        cell.font = Font(bold=True)


class SeriesExcelExporter:
    SERIES_HEADERS = [
        "Series",
        "Detection Method",
        "Source / Confidence",
        "Videos",
        "Total Views",
        "Avg Views",
        "Avg Engagement Rate",
        "First Published",
        "Last Published",
        "Cadence (days)",
        "Trend",
    ]
    VIDEO_HEADERS = ["Video ID", "Title", "Published", "Format", "Views", "Likes", "Comments", "Watch Hours"]

    def __init__(self, videos, detection):
        self.videos = videos
        self.detection = detection
        self.series = detection.get("series", [])

    def uncategorized_videos(self):
        claimed = {video_id for series in self.series for video_id in series.get("videoIds", [])}
        return [video for video in self.videos if video.get("external_id") not in claimed]

    def create_summary_tab(self, workbook):
        ws = workbook.create_sheet("Summary")
        channel = self.videos[0].get("channel", "") if self.videos else ""

        rows = [
            ["CONTENT SERIES AUDIT - SUMMARY"],
            [""],
            ["Channel", ""],
            ["Channel Name", channel],
            ["Videos Analyzed", len(self.videos)],
            [""],
            ["Series Detection", ""],
            ["Series Detected", len(self.series)],
            ["Pattern Series", sum(1 for s in self.series if s.get("detectionMethod") == "pattern")],
            ["AI Clustered Series", sum(1 for s in self.series if s.get("detectionMethod") == "semantic")],
            ["Uncategorized Videos", len(self.uncategorized_videos())],
            ["AI Step Skipped", "Yes" if self.detection.get("ai_step_skipped") else "No"],
        ]
        if self.detection.get("ai_skip_reason"):
            rows.append(["AI Skip Reason", self.detection["ai_skip_reason"]])

        for row in rows:
            ws.append(row)

        style_title_row(ws, 2)
        style_section_row(ws, 3, 2)
        style_section_row(ws, 7, 2)
        autosize_columns(ws)

    def create_series_tab(self, workbook):
        ws = workbook.create_sheet("Series")
        ws.append(["DETECTED SERIES"])
        ws.append(self.SERIES_HEADERS)

        for series in self.series:
            trend = series.get("performanceTrend", "stable")
            ws.append(
                [
                    series.get("name", ""),
                    series.get("detectionMethod", ""),
                    series.get("patternSource") or series.get("confidence") or "",
                    series.get("videoCount", 0),
                    series.get("totalViews", 0),
                    round(series.get("avgViews", 0), 1),
                    round(series.get("avgEngagementRate", 0) * 100, 2),
                    (series.get("firstPublished") or "")[:10],
                    (series.get("lastPublished") or "")[:10],
                    series.get("cadenceDays"),
                    trend,
                ]
            )
            if trend in TREND_FILLS:
                ws.cell(row=ws.max_row, column=len(self.SERIES_HEADERS)).fill = TREND_FILLS[trend]

        style_title_row(ws, len(self.SERIES_HEADERS))
        style_header_row(ws, 2, len(self.SERIES_HEADERS))
        ws.freeze_panes = "A3"
        autosize_columns(ws)

    def create_uncategorized_tab(self, workbook):
        ws = workbook.create_sheet("Uncategorized")
        ws.append(["UNCATEGORIZED VIDEOS"])
        ws.append(self.VIDEO_HEADERS)

        uncategorized = sorted(self.uncategorized_videos(), key=lambda video: video.get("view_count", 0), reverse=True)
        for video in uncategorized:
            ws.append(
                [
                    video.get("external_id", ""),
                    video.get("title", ""),
                    (video.get("published_at") or "")[:10],
                    video.get("format", ""),
                    video.get("view_count", 0),
                    video.get("like_count", 0),
                    video.get("comment_count", 0),
                    round(video.get("watch_hours", 0.0), 2),
                ]
            )

        style_title_row(ws, len(self.VIDEO_HEADERS))
        style_header_row(ws, 2, len(self.VIDEO_HEADERS))
        ws.freeze_panes = "A3"
        autosize_columns(ws)

    def export(self, output_path):
        output_path = Path(output_path)
        workbook = Workbook()
        default_sheet = workbook.active
        workbook.remove(default_sheet)

        self.create_summary_tab(workbook)
        self.create_series_tab(workbook)
        self.create_uncategorized_tab(workbook)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(output_path)
        return output_path


def main():
    if len(sys.argv) < 3 or len(sys.argv) > 4:
        print("Error: Missing required files")
        print("\nUsage:")
        print("  python3 -m tools.export_series_to_excel path/to/videos.json path/to/series.json [output.xlsx]")
        sys.exit(1)

    videos_file = Path(sys.argv[1])
    series_file = Path(sys.argv[2])
    output_file = Path(sys.argv[3]) if len(sys.argv) == 4 else series_file.parent / "series_report.xlsx"

    try:
        print("Loading data files...")
        with videos_file.open("r", encoding="utf-8") as f:
            videos = json.load(f)
        with series_file.open("r", encoding="utf-8") as f:
            detection = json.load(f)

        print("Exporting to Excel workbook...")
        print("=" * 50)

        exporter = SeriesExcelExporter(videos, detection)
        saved_path = exporter.export(output_file)

        print("\n" + "=" * 50)
        print("SUCCESS")
        print(f"\nExcel file saved at:\n{saved_path}")
        print(f"\nGenerated at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    except FileNotFoundError as exc:
        print(f"Error: File not found: {exc}")
        sys.exit(1)
    except json.JSONDecodeError as exc:
        print(f"Error: Invalid JSON file: {exc}")
        sys.exit(1)
    except Exception as exc:
        print(f"Error: {exc}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
