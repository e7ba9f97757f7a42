"""
Parcel Atlas CLI

Command-line interface for resolving parcel context, rendering tiles and
computing routes over a configured dataset.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from parcel_atlas.config_manager import ConfigManager
from parcel_atlas.errors import ParcelAtlasError
from parcel_atlas.service import ParcelAtlas

logger = logging.getLogger(__name__)


def _destination(value: str) -> Any:
    """Parcel id when numeric, registration code otherwise."""
    return int(value) if value.isdigit() else value


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parcel-atlas",
        description="Parcel Atlas - parcel context, vector tiles and routes to entry points",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Write an example configuration
  %(prog)s example-config parcel_atlas.yaml

  # Parcel context at a location or by registration code
  %(prog)s -c parcel_atlas.yaml context --lat -1.2895 --lng 36.8202
  %(prog)s -c parcel_atlas.yaml context --lr-no 209/1234

  # Render a vector tile
  %(prog)s -c parcel_atlas.yaml tile 15 19735 16501 -o tile.mvt

  # Route to a parcel, and all alternatives
  %(prog)s -c parcel_atlas.yaml route --lat -1.2921 --lng 36.8230 LR/123/45 --mode walking
  %(prog)s -c parcel_atlas.yaml alternatives --lat -1.2921 --lng 36.8230 LR/123/45
        """,
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Configuration YAML file (required for all commands except example-config)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    context = subparsers.add_parser("context", help="Resolve the spatial context of a parcel")
    context.add_argument("--lat", type=float, help="Latitude of a point inside the parcel")
    context.add_argument("--lng", type=float, help="Longitude of a point inside the parcel")
    context.add_argument("--lr-no", help="Registration code")
    context.add_argument("--gid", type=int, help="Parcel id")

    tile = subparsers.add_parser("tile", help="Render a parcel vector tile")
    tile.add_argument("z", type=int)
    tile.add_argument("x", type=int)
    tile.add_argument("y", type=int)
    tile.add_argument("-o", "--output", type=Path, required=True, help="Output .mvt file")

    for name, help_text in (("route", "Route to the best entry point"), ("alternatives", "Routes to every entry point")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("destination", help="Parcel registration code or id")
        sub.add_argument("--lat", type=float, required=True, help="Origin latitude")
        sub.add_argument("--lng", type=float, required=True, help="Origin longitude")
        sub.add_argument("--mode", default="driving", choices=["driving", "walking", "cycling", "motorcycle"])
        if name == "route":
            sub.add_argument("--entry-point", help="Preferred entry point label")

    address = subparsers.add_parser("address", help="Physical address and short code of a parcel")
    address.add_argument("destination", help="Parcel registration code or id")

    search = subparsers.add_parser("search", help="Search parcels")
    search.add_argument("--lr-no", help="Registration code substring")
    search.add_argument("--fr-no", help="Secondary code substring")
    search.add_argument("--lat", type=float)
    search.add_argument("--lng", type=float)
    search.add_argument("--radius", type=float, help="Search radius in meters (1-10000, default 1000)")
    search.add_argument("--limit", type=int, default=50)
    search.add_argument("--with-context", action="store_true", help="Include each hit's full spatial context")

    road_name = subparsers.add_parser("road-name", help="Name of the road at a coordinate")
    road_name.add_argument("--lat", type=float, required=True)
    road_name.add_argument("--lng", type=float, required=True)

    example = subparsers.add_parser("example-config", help="Write an example configuration file")
    example.add_argument("output", type=Path)

    return parser


def run(args: argparse.Namespace) -> int:
    if args.command == "example-config":
        ConfigManager().save_example_config(args.output)
        print(f"✅ Saved example configuration to {args.output}")
        return 0

    if args.config is None:
        print("❌ Error: --config is required for this command", file=sys.stderr)
        return 2

    config = ConfigManager(args.config).load()
    logging.getLogger().setLevel(logging.DEBUG if args.verbose else config.log_level)
    atlas = ParcelAtlas.from_config(config)

    if args.command == "context":
        context = atlas.resolve_context(lat=args.lat, lng=args.lng, lr_no=args.lr_no, gid=args.gid)
        _print_json(context.to_dict())
    elif args.command == "tile":
        data = atlas.render_tile(args.z, args.x, args.y)
        args.output.write_bytes(data)
        print(f"📁 Wrote {len(data)} bytes to {args.output}")
    elif args.command == "route":
        origin = {"lat": args.lat, "lng": args.lng}
        route = atlas.calculate_route(origin, _destination(args.destination), args.mode, args.entry_point)
        _print_json(route.to_dict())
    elif args.command == "alternatives":
        origin = {"lat": args.lat, "lng": args.lng}
        routes = atlas.alternative_routes(origin, _destination(args.destination), args.mode)
        _print_json([route.to_dict() for route in routes])
    elif args.command == "address":
        _print_json(atlas.describe_address(_destination(args.destination)))
    elif args.command == "search":
        results = atlas.search_parcels(
            lr_no=args.lr_no,
            fr_no=args.fr_no,
            lat=args.lat,
            lng=args.lng,
            radius_m=args.radius,
            limit=args.limit,
            with_context=args.with_context,
        )
        _print_json([result.to_dict() for result in results])
    elif args.command == "road-name":
        _print_json(atlas.road_name(args.lat, args.lng))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    try:
        return run(args)
    except ParcelAtlasError as e:
        print(f"❌ Error ({e.code}): {e}", file=sys.stderr)
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
