#!/usr/bin/env python3
"""
KAG replay - fold an event log through the full pipeline offline.

Reads a JSON array of events (and optionally a previously saved state),
runs signals, scores and recommendations, and writes the result as JSON.
No template generator is configured, so suggested messages use the local
templates.

Usage:
    python scripts/replay_events.py --events events.json
    python scripts/replay_events.py --events events.json --state state.json --out result.json
    python scripts/replay_events.py --events events.json --now 2024-03-01T12:00:00Z
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from kag.config import get_settings
from kag.engine.pipeline import run_pipeline
from kag.utils.logging import configure_logging, get_logger
from kag.utils.timeutils import to_datetime, utc_now

logger = get_logger(__name__)


def load_json(path: Path):
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def main() -> int:
    parser = argparse.ArgumentParser(description="Replay KAG events through the pipeline")
    parser.add_argument("--events", required=True, type=Path, help="JSON file with an array of events")
    parser.add_argument("--state", type=Path, help="JSON file with a previously saved signal state")
    parser.add_argument("--now", help="Evaluation instant (ISO-8601); defaults to current UTC time")
    parser.add_argument("--out", type=Path, help="Write the result here instead of stdout")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings, stream=sys.stderr)

    events = load_json(args.events)
    if isinstance(events, dict):
        events = events.get("events", [])
    if not isinstance(events, list):
        print(f"Expected a JSON array of events in {args.events}", file=sys.stderr)
        return 1

    previous_state = load_json(args.state) if args.state else None

    now = to_datetime(args.now)
    if args.now and now is None:
        print(f"Could not parse --now value: {args.now}", file=sys.stderr)
        return 1

    result = asyncio.run(
        run_pipeline(previous_state, events, now=now or utc_now(), settings=settings)
    )
    logger.info(
        "replay_completed",
        events_file=str(args.events),
        processed_events=result.processed_events,
        recommendations=len(result.recommendations),
    )

    output = json.dumps(result.model_dump(mode="json"), indent=2)
    if args.out:
        args.out.write_text(output + "\n", encoding="utf-8")
        print(f"Wrote {args.out}")
    else:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
