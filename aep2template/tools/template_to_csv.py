#!/usr/bin/env python3
"""
Template to CSV

Flattens every clip of a Template JSON document into one CSV row, for
reviewing a converted timeline in a spreadsheet.
"""

import argparse
import csv
import json
import sys

FIELDNAMES = [
    "track_id",
    "track",
    "track_type",
    "clip_id",
    "name",
    "type",
    "start",
    "duration",
    "end",
    "content",
]


def clip_rows(template):
    timeline = template.get("timeline", {})
    for track in timeline.get("tracks", []):
        for clip in track.get("clips", []):
            start = clip.get("start", 0)
            duration = clip.get("duration", 0)
            yield {
                "track_id": track.get("id"),
                "track": track.get("name"),
                "track_type": track.get("type"),
                "clip_id": clip.get("id"),
                "name": clip.get("name"),
                "type": clip.get("type"),
                "start": start,
                "duration": duration,
                "end": round(start + duration, 6),
                "content": clip.get("src") or clip.get("text") or clip.get("color") or clip.get("fill") or "",
            }


def write_csv(template, out_file):
    writer = csv.DictWriter(out_file, fieldnames=FIELDNAMES)
    writer.writeheader()
    count = 0
    for row in clip_rows(template):
        writer.writerow(row)
        count += 1
    return count


def main(argv=None):
    parser = argparse.ArgumentParser(description="Flatten Template JSON clips to CSV")
    parser.add_argument("json", help="Input Template JSON")
    parser.add_argument("-o", "--output", help="Output CSV file (default: stdout)")
    args = parser.parse_args(argv)

    with open(args.json, encoding="utf-8") as f:
        data = json.load(f)

    if args.output:
        with open(args.output, "w", newline="", encoding="utf-8") as csvfile:
            write_csv(data, csvfile)
    else:
        write_csv(data, sys.stdout)


if __name__ == "__main__":
    main()
