# pushup_tracker/runtime/cli.py
from __future__ import annotations
import argparse
import itertools
import json
import logging
import sys
import time
from pathlib import Path
from typing import Iterator, Optional, Tuple

from pushup_tracker.common.settings import Settings
from pushup_tracker.counter.feedback import FrameResult
from pushup_tracker.counter.session import PushupSession, SessionRecord
from pushup_tracker.counter.timer import format_duration
from pushup_tracker.data import db


def load_recording(path: Path) -> Iterator[Tuple[float, Optional[list]]]:
    """Read a JSONL pose recording: one {"timestamp": s, "landmarks": [...]} object per line."""
    with path.open("r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{lineno}: invalid JSON ({exc.msg})") from exc
            if not isinstance(obj, dict) or "timestamp" not in obj:
                raise ValueError(f"{path}:{lineno}: missing timestamp")
            yield float(obj["timestamp"]), obj.get("landmarks")


def _print_result(res: FrameResult):
    if res.rep_completed:
        print(f"rep {res.count}  ({res.angle_deg:.1f}°, {res.side})", flush=True)


def replay(path: Path, session: PushupSession, notes: str = "") -> SessionRecord:
    """Push a recording through a session using the recorded timestamps."""
    frames = load_recording(path)
    first = next(frames, None)
    if first is None:
        raise ValueError(f"{path}: empty recording")
    last_t = first[0]
    session.start(last_t)
    with session:
        for t, landmarks in itertools.chain([first], frames):
            _print_result(session.push_frame(landmarks, t))
            last_t = t
        return session.finish(last_t, notes=notes)


def live(session: PushupSession, device: int, show_window: bool, notes: str = "") -> SessionRecord:
    from pushup_tracker.counter.camera import iter_webcam_frames

    print("Starting camera. Press Ctrl+C to stop and save.", flush=True)
    with session:
        try:
            for t, frame in iter_webcam_frames(device=device, show_window=show_window):
                _print_result(session.push_frame(frame, t))
        except KeyboardInterrupt:
            print("\nStopping…", flush=True)
        return session.finish(time.time(), notes=notes)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pushup-tracker", description="Count push-ups from pose landmarks.")
    p.add_argument("--save", action="store_true", help="store the finished session in the local database")
    p.add_argument("--notes", default="", help="notes attached to the saved session")
    sub = p.add_subparsers(dest="command", required=True)
    rp = sub.add_parser("replay", help="replay a JSONL landmark recording")
    rp.add_argument("recording", type=Path)
    lv = sub.add_parser("live", help="count from the webcam (needs the camera extra)")
    lv.add_argument("--device", type=int, default=0)
    lv.add_argument("--window", action="store_true", help="show the camera preview")
    return p


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s | %(name)s | %(message)s")

    reporter = None
    if args.save:
        db.configure(settings.db_path)
        reporter = db.SqliteSessionReporter()
    session = PushupSession(settings.rep_config(), reporter=reporter)

    try:
        if args.command == "replay":
            record = replay(args.recording, session, notes=args.notes)
        else:
            record = live(session, args.device, args.window, notes=args.notes)
    except (OSError, ValueError, RuntimeError) as e:
        print("Error:", e, file=sys.stderr)
        return 1

    print(f"total: {record.count} push-ups in {format_duration(record.duration_sec)}", flush=True)
    if reporter is not None and reporter.last_saved:
        print(f"saved session {reporter.last_saved['id']}", flush=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
