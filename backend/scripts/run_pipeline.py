from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from backend.app.services.errors import PipelineError
from backend.app.services.history import HistoryStore
from backend.app.services.peer_range import format_subscribers
from backend.app.services.pipeline import IdeaPipeline


def print_summary(run) -> None:
    channel = run.analysis.channel
    band = run.peers.peer_range
    print(f"{channel.title} ({format_subscribers(channel.subscriber_count)} subscribers)")
    print(f"Niche: {', '.join(run.analysis.niche)}")
    print(f"Peer range: {format_subscribers(band.min)} - {format_subscribers(band.max)}")
    print(f"Peers analyzed: {len(run.peers.peers)}, outliers found: {len(run.peers.outliers)}")
    print()
    for number, idea in enumerate(run.ideas.ideas, start=1):
        print(f"{number}. {idea.title}")
        print(f"   {idea.insight}")
        for video in idea.evidence:
            print(f"   - {video.title} ({video.channel_title}, {video.multiplier}x)")
        print()


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate video ideas for a channel from its peers' outliers.")
    parser.add_argument("channel", help="Channel URL, @handle, channel id, or name")
    parser.add_argument("--history", type=Path, default=None, help="Optional JSON file to record the run")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    pipeline = IdeaPipeline(history=HistoryStore(args.history))
    try:
        run = pipeline.run(args.channel, entitled=True)
    except PipelineError as exc:
        print(json.dumps(exc.to_dict()), file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(run.model_dump(), indent=2))
    else:
        print_summary(run)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
