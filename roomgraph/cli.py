"""CLI for floorplan analysis."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from roomgraph.adjacency.oracle import AnthropicMessagesOracle
from roomgraph.exceptions import ConfigurationError, EmptyFloorplanError, SchemaError
from roomgraph.logging_config import setup_logging
from roomgraph.pipeline import analyze_floorplan
from roomgraph.settings import Settings

EXIT_INPUT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roomgraph-analyze",
        description="Turn semantic room records and a floorplan raster into a laid-out 3D room graph",
    )
    parser.add_argument("--rooms", type=Path, required=True, help="Semantic extraction JSON (rooms payload)")
    parser.add_argument("--image", type=Path, help="Floorplan raster (PNG or JPEG)")
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--output", type=Path, help="Write the result JSON here instead of stdout")
    parser.add_argument(
        "--use-oracle",
        action="store_true",
        help="Resolve adjacency with the reasoning oracle (needs the API key env var)",
    )
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file (rotated)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level.upper(), json_format=args.json_logs, log_file=args.log_file)

    try:
        settings = Settings.load(args.config)
        payload = json.loads(args.rooms.read_text(encoding="utf-8"))
        oracle = AnthropicMessagesOracle(settings.oracle) if args.use_oracle else None
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read input: {}", exc)
        return EXIT_INPUT_ERROR
    except ConfigurationError as exc:
        logger.error("Configuration error: {}", exc.message)
        return EXIT_INPUT_ERROR

    try:
        result = asyncio.run(analyze_floorplan(payload, args.image, oracle=oracle, settings=settings))
    except (SchemaError, EmptyFloorplanError) as exc:
        logger.error("{}", exc.message)
        return EXIT_INPUT_ERROR

    output = json.dumps(result.to_dict(), indent=2)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(output, encoding="utf-8")
        logger.info("Saved result to {}", args.output)
    else:
        sys.stdout.write(output + "\n")

    if not result.validation.is_valid:
        logger.warning("Layout has {} validation error(s)", len(result.validation.errors))
    return 0


if __name__ == "__main__":
    sys.exit(main())
