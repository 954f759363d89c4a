import os
import re
import shlex
import shutil
import subprocess
import sys
from pathlib import Path

YOUTUBE_CHANNEL_URL = re.compile(r"^https?://(www\.)?youtube\.com/(@|channel/|c/|user/)", re.IGNORECASE)


def run_step(command, step_name):
    print(f"\n🚀 Running Step: {step_name}...")
    try:
        process = subprocess.Popen(command, shell=True, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)

        # Output is kept so later steps can find the files earlier steps wrote
        full_output = ""
        for line in process.stdout:
            print(line, end="")
            full_output += line

        process.wait()

        if process.returncode != 0:
            print(f"❌ Error in {step_name}")
            return False, full_output

        return True, full_output
    except Exception as e:
        print(f"❌ Exception in {step_name}: {e}")
        return False, str(e)


def tool(module, *args):
    quoted = " ".join(shlex.quote(str(arg)) for arg in args)
    return f"{shlex.quote(sys.executable)} -m tools.{module} {quoted}"


def copy_to_reports(source, target, label):
    if not os.path.exists(source):
        return
    try:
        shutil.copy(source, target)
        print(f"✨ Final {label} copied to: {target}")
    except Exception as e:
        print(f"⚠️ Could not copy {label} to reports/ archive: {e}")


def main():
    if len(sys.argv) < 2:
        print("Usage: python3 main.py <export.csv | exports.zip | export folder | export URL | YouTube channel URL>")
        sys.exit(1)

    source = sys.argv[1]
    os.makedirs("reports", exist_ok=True)

    # Step 1: Ingest videos
    if YOUTUBE_CHANNEL_URL.match(source):
        success, output = run_step(tool("youtube_fetch_channel_data", source), "Fetching Channel Catalogue")
    else:
        success, output = run_step(tool("youtube_export_parser", source), "Parsing Studio Export")
    if not success:
        sys.exit(1)

    match = re.search(r"Videos saved to: (.+)", output)
    if not match:
        print("❌ Could not determine the videos file from output.")
        sys.exit(1)

    videos_path = Path(match.group(1).strip())
    run_dir = videos_path.parent
    series_path = run_dir / "series.json"
    print(f"✅ Videos file: {videos_path}")

    # Step 2: Detect series
    success, _ = run_step(tool("series_detection", videos_path), "Detecting Series")
    if not success:
        sys.exit(1)

    # Step 3: Export to Excel
    success, _ = run_step(tool("export_series_to_excel", videos_path, series_path), "Exporting to Excel")
    if not success:
        print("⚠️ Excel export failed, proceeding to Markdown report.")

    # Step 4: Generate Markdown Report
    run_step(tool("generate_series_report", videos_path, series_path), "Generating Markdown Report")

    # Step 5: Copy reports to reports directory
    copy_to_reports(run_dir / "series_report.md", f"reports/{run_dir.name}_series_report.md", "report")
    copy_to_reports(run_dir / "series_report.xlsx", f"reports/{run_dir.name}_series.xlsx", "Excel workbook")

    print("\n✅ Series Pipeline Complete!")


if __name__ == "__main__":
    main()
