#!/usr/bin/env python3
"""
Series Report Generator
Generates a markdown summary of the detected content series

Usage:
    python3 -m tools.generate_series_report path/to/videos.json path/to/series.json
"""

import sys
import json
from pathlib import Path
from datetime import datetime


TREND_ICONS = {
    "growing": "📈",
    "declining": "📉",
    "stable": "➖",
    "new": "🆕",
}


class SeriesReportGenerator:
    def __init__(self, videos, detection, channel_name=None):
        """Initialize generator with videos.json rows and series.json summary"""
        self.videos = videos
        self.detection = detection
        self.series = detection.get("series", [])
        self.channel_name = channel_name or (videos[0].get("channel") if videos else "") or "Unknown Channel"

    def uncategorized_videos(self):
        claimed = {video_id for series in self.series for video_id in series.get("videoIds", [])}
        return [video for video in self.videos if video.get("external_id") not in claimed]

    def generate_header(self):
        """Generate report header"""
        date_str = datetime.now().strftime('%B %d, %Y')

        return f"""# Content Series Report
**Channel:** {self.channel_name}
**Date:** {date_str}
**Videos Analyzed:** {len(self.videos)}

---

"""

    def generate_summary(self):
        series_views = sum(series.get("totalViews", 0) for series in self.series)
        total_views = sum(video.get("view_count", 0) for video in self.videos)
        share = (series_views / total_views * 100) if total_views else 0
        pattern_count = sum(1 for series in self.series if series.get("detectionMethod") == "pattern")

        text = f"""## Summary

- Series detected: {len(self.series)} ({pattern_count} from title patterns, {len(self.series) - pattern_count} from AI clustering)
- Videos in a series: {len(self.videos) - len(self.uncategorized_videos())}
- Uncategorized videos: {len(self.uncategorized_videos())}
- Share of views from series: {share:.1f}%
"""
        for message in self.detection.get("messages", []):
            text += f"\n> ⚠️ {message}\n"
        if self.detection.get("ai_skip_reason"):
            text += f"> Reason: {self.detection['ai_skip_reason']}\n"

        return text + "\n---\n\n"

    def generate_series_table(self):
        """Generate series overview table"""
        if not self.series:
            return "## Series\n\nNo recurring series were detected.\n\n---\n\n"

        text = "## Series\n\n"
        text += "| Series | Method | Videos | Total Views | Avg Views | Engagement | Cadence | Trend |\n"
        text += "|---|---|---|---|---|---|---|---|\n"
        for series in self.series:
            cadence = f"every {series['cadenceDays']} days" if series.get("cadenceDays") is not None else "N/A"
            trend = series.get("performanceTrend", "stable")
            text += (
                f"| {series['name']} | {series.get('detectionMethod', '')} | {series.get('videoCount', 0)} "
                f"| {series.get('totalViews', 0):,} | {series.get('avgViews', 0):,.0f} "
                f"| {series.get('avgEngagementRate', 0) * 100:.2f}% | {cadence} "
                f"| {TREND_ICONS.get(trend, '')} {trend} |\n"
            )
        return text + "\n---\n\n"

    def generate_series_details(self):
        videos_by_id = {video.get("external_id"): video for video in self.videos}
        text = "## Series Details\n\n"

        for series in self.series:
            source = series.get("patternSource") or f"{series.get('confidence') or 'medium'} confidence"
            text += f"### {series['name']}\n\n"
            text += f"*Detected by {series.get('detectionMethod', 'pattern')} ({source})*\n\n"
            first = (series.get("firstPublished") or "")[:10] or "N/A"
            last = (series.get("lastPublished") or "")[:10] or "N/A"
            text += f"Published {first} to {last}\n\n"

            for video_id in series.get("videoIds", []):
                video = videos_by_id.get(video_id, {})
                text += f"- {video.get('title', video_id)} ({video.get('view_count', 0):,} views)\n"
            text += "\n"

        return text + "---\n\n"

    def generate_uncategorized(self):
        uncategorized = sorted(self.uncategorized_videos(), key=lambda video: video.get("view_count", 0), reverse=True)
        text = f"## Uncategorized Videos ({len(uncategorized)})\n\n"
        for video in uncategorized[:20]:
            text += f"- {video.get('title', '')} ({video.get('view_count', 0):,} views)\n"
        if len(uncategorized) > 20:
            text += f"- ... and {len(uncategorized) - 20} more\n"
        return text

    def generate(self):
        """Generate complete report"""
        print("📝 Generating series report...")

        report = ""
        report += self.generate_header()
        report += self.generate_summary()
        report += self.generate_series_table()
        if self.series:
            report += self.generate_series_details()
        report += self.generate_uncategorized()

        print("✅ Report generated successfully!")

        return report


def main():
    """Main execution function"""
    if len(sys.argv) != 3:
        print("❌ Error: Missing required files")
        print("\nUsage:")
        print("  python3 -m tools.generate_series_report path/to/videos.json path/to/series.json")
        sys.exit(1)

    videos_file = sys.argv[1]
    series_file = sys.argv[2]

    try:
        print("📂 Loading data files...")
        with open(videos_file, 'r', encoding='utf-8') as f:
            videos = json.load(f)
        with open(series_file, 'r', encoding='utf-8') as f:
            detection = json.load(f)

        print("\n🚀 Generating Series Report")
        print("=" * 50)

        generator = SeriesReportGenerator(videos, detection)
        report = generator.generate()

        output_path = Path(series_file).parent / 'series_report.md'
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(report)

        print("\n" + "=" * 50)
        print("✅ SUCCESS!")
        print(f"📁 Report saved to: {output_path}")
        print("\n📄 Report Preview:")
        print("=" * 50)
        print(report[:1000] + "\n\n... (truncated for display)\n")

    except FileNotFoundError as e:
        print(f"❌ Error: File not found: {e}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(f"❌ Error: Invalid JSON file: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
