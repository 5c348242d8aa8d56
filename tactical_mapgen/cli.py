"""Command line entry point: generate a map and print a JSON summary."""

import argparse
import json
import sys
from typing import List, Optional

import structlog

from .config import configure_logging, settings
from .core.context import BiomeType, DevelopmentLevel, ElevationZone, HydrologyType, Season
from .core.pipeline import TacticalMapGenerator
from .errors import TacticalMapError

logger = structlog.get_logger()


def _values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tactical-mapgen", description="Generate a deterministic tactical battle map"
    )
    parser.add_argument("--width", type=int, default=20, help="Map width in tiles")
    parser.add_argument("--height", type=int, default=20, help="Map height in tiles")
    parser.add_argument("--biome", choices=_values(BiomeType), default=BiomeType.FOREST.value)
    parser.add_argument(
        "--development", choices=_values(DevelopmentLevel), default=DevelopmentLevel.WILDERNESS.value
    )
    parser.add_argument(
        "--elevation", choices=_values(ElevationZone), default=ElevationZone.LOWLAND.value
    )
    parser.add_argument(
        "--hydrology", choices=_values(HydrologyType), help="Water regime (defaults per biome)"
    )
    parser.add_argument("--season", choices=_values(Season), default=Season.SUMMER.value)
    parser.add_argument(
        "--seed", help="Integer or text seed (derived from the parameters when omitted)"
    )
    parser.add_argument(
        "--tiles", action="store_true", help="Include terrain rows (first letter per tile)"
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level")
    parser.add_argument(
        "--log-format", choices=["json", "console"], default=settings.log_format
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    context = {
        "biome": args.biome,
        "development": args.development,
        "elevation": args.elevation,
        "season": args.season,
    }
    if args.hydrology:
        context["hydrology"] = args.hydrology

    generator = TacticalMapGenerator()
    try:
        bundle = generator.generate(args.width, args.height, context, args.seed)
        grid = generator.assemble(bundle, context)
    except TacticalMapError as e:
        logger.error("Map generation failed", code=e.code, error=e.message)
        print(json.dumps({"error": e.to_dict()}, default=str), file=sys.stderr)
        return 2

    summary = {
        "id": grid.id,
        "seed": grid.seed,
        "width": grid.width,
        "height": grid.height,
        "cell_size": grid.cell_size,
        "context": grid.parameters()["context"],
        "counts": grid.metadata.counts,
        "stage_timings_ms": grid.metadata.stage_timings,
        "seed_warnings": grid.metadata.seed_warnings,
        "fingerprint": bundle.fingerprint(),
    }
    if args.tiles:
        summary["terrain"] = grid.terrain_rows()
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
