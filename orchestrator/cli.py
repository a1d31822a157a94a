"""CLI entrypoint for film runs."""
import argparse
import json
import os
import shutil
import sys
from typing import Any, Dict, Optional

from .pipeline import Orchestrator, dump_summary
from .validators import validate_master_timeline


def run_film(args: argparse.Namespace) -> Dict[str, Any]:
    orch = Orchestrator()
    video_id = args.video_id or orch.create_video(args.text)
    summary = orch.run_pipeline(video_id)
    if args.output_dir and summary.get("final_path"):
        out_path = _copy_final(args.output_dir, video_id, summary["final_path"])
        summary["output_path"] = out_path
    print(dump_summary(summary))
    return summary


def _copy_final(output_dir: str, video_id: str, final_path: str) -> Optional[str]:
    if not os.path.isfile(final_path):
        return None
    out_dir = os.path.abspath(output_dir)
    os.makedirs(out_dir, exist_ok=True)
    out_path = os.path.join(out_dir, f"{video_id}.mp4")
    shutil.copy2(final_path, out_path)
    return out_path


def validate_timeline_file(path: str, max_act_index: int) -> int:
    with open(path, "r", encoding="utf-8") as f:
        timeline = json.load(f)
    errors = validate_master_timeline(timeline, max_act_index)
    if errors:
        for err in errors:
            print(err)
        return 1
    print("timeline ok")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a short narrated film from a text prompt")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--text", help="User prompt for a new run")
    group.add_argument("--video-id", default=None, help="Resume or retry an existing run")
    group.add_argument("--validate-timeline", metavar="PATH", default=None, help="Validate a master timeline JSON file and exit")
    parser.add_argument("--max-act-index", type=int, default=3)
    parser.add_argument("--output-dir", default=None, help="Copy the finished film here as <video_id>.mp4")
    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    if args.validate_timeline:
        sys.exit(validate_timeline_file(args.validate_timeline, args.max_act_index))
    summary = run_film(args)
    if summary.get("status") != "ready" and not summary.get("skipped"):
        sys.exit(1)


if __name__ == "__main__":
    main()
