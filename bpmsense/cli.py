"""Command line entry point.

Usage:
    bpmsense analyze track.mp3 [more.flac ...] [--beat-mode breakbeat] [--verbose]
    bpmsense serve [--reload]
"""

import argparse
import json
import logging
import sys

from bpmsense.analysis.engine import estimate_tempo
from bpmsense.analysis.models import BeatMode
from bpmsense.audio.loader import load_audio
from bpmsense.audio.preprocessing import preprocess
from bpmsense.config import settings

logger = logging.getLogger(__name__)


def analyze_path(path: str, beat_mode: BeatMode) -> dict:
    """Decode *path* and estimate its tempo; the result as a JSON-ready dict."""
    audio, sr = load_audio(path, sr=settings.sample_rate, max_seconds=settings.max_audio_seconds)
    audio = preprocess(audio, sr, settings.high_pass_cutoff)
    result = estimate_tempo(audio, sr, beat_mode)
    record = {"file": path}
    if result is None:
        record["error"] = "no tempo found"
    else:
        record.update(result.to_dict())
    return record


def _cmd_analyze(args) -> int:
    mode = BeatMode.parse(args.beat_mode)
    failed = 0
    for path in args.files:
        try:
            record = analyze_path(path, mode)
        except Exception as e:
            logger.error(f"{path}: {e}")
            record = {"file": path, "error": str(e)}
        if "error" in record:
            failed += 1
        print(json.dumps(record))
    return 1 if failed else 0


def _cmd_serve(args) -> int:
    from bpmsense.main import run
    run(reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bpmsense",
        description="Tempo and beat-type estimation",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_analyze = sub.add_parser("analyze", help="Estimate tempo of audio files")
    p_analyze.add_argument("files", nargs="+", help="Audio files to analyze")
    p_analyze.add_argument(
        "--beat-mode",
        default=settings.default_beat_mode,
        choices=[m.value for m in BeatMode],
        help=f"Meter heuristics to apply (default: {settings.default_beat_mode})",
    )
    p_analyze.add_argument("--verbose", action="store_true",
                           help="Log every analysis stage")
    p_analyze.set_defaults(func=_cmd_analyze)

    p_serve = sub.add_parser("serve", help="Run the HTTP/WebSocket API")
    p_serve.add_argument("--reload", action="store_true",
                         help="Restart on code changes")
    p_serve.set_defaults(func=_cmd_serve, verbose=False)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
