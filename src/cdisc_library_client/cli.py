"""
CLI commands for exploring the CDISC Library.
"""

import argparse
import asyncio
import json
import logging
import sys

from .client import CdiscLibrary
from .config import ClientConfig
from .matching import MatchMode


def setup_logging(verbose: bool = False, level_name: str = "INFO"):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def build_library(args) -> CdiscLibrary:
    """Client configured from the environment, overridden by CLI options."""
    config = ClientConfig.from_env()
    if args.api_key:
        config.api_key = args.api_key
    if args.base_url:
        config.base_url = args.base_url
    return CdiscLibrary.from_config(config)


def emit(value):
    if isinstance(value, str):
        print(value)
    else:
        print(json.dumps(value, indent=2, default=str))


async def _run(args, command) -> int:
    async with build_library(args) as library:
        code = await command(library, args)
        if args.traffic:
            print(f"Traffic: {library.get_traffic_stats()}", file=sys.stderr)
        return code


async def cmd_check(library, args):
    """Check connection command."""
    result = await library.check_connection()
    emit(result)
    if result["statusCode"] == 200:
        print("✓ Connected to the CDISC Library")
        return 0
    print(f"✗ Connection failed: {result['description']}")
    return 1


async def cmd_products(library, args):
    """List products command."""
    details = await library.get_product_details(type_=args.type, format=args.format)
    if not details:
        print("✗ No products found")
        return 1
    emit(details)
    return 0


async def cmd_item_groups(library, args):
    """List item groups of a product."""
    groups = await library.get_item_groups(args.product, type_=args.type, format=args.format)
    if not groups:
        print(f"✗ No item groups found for {args.product}")
        return 1
    if isinstance(groups, dict) and args.type == "long":
        groups = {name: group.label for name, group in groups.items()}
    emit(groups)
    return 0


async def cmd_item_group(library, args):
    """Show items of one item group."""
    result = await library.get_item_group(
        args.name, args.product, format=args.format or "json"
    )
    if not result:
        print(f"✗ Item group {args.name} not found in {args.product}")
        return 1
    emit(result)
    return 0


async def cmd_find(library, args):
    """Find items matching a name template."""
    product = await library.get_product(args.product)
    if product is None:
        print(f"✗ Unknown product: {args.product}")
        return 1
    items = product.find_matching_items(args.name, mode=args.mode, first_only=args.first_only)
    if not items:
        print(f"✗ No items matching {args.name}")
        return 1
    for item in items:
        print(f"  {item.id}\t{item.label or ''}")
    return 0


async def cmd_codelist(library, args):
    """Show terms of a code list."""
    product = await library.get_product(args.product, shallow=True)
    if product is None:
        print(f"✗ Unknown product: {args.product}")
        return 1
    result = await product.get_code_list(args.concept_id, format=args.format)
    if not result:
        print(f"✗ Code list {args.concept_id} not found in {args.product}")
        return 1
    emit(result.to_dict() if args.format is None else result)
    return 0


async def cmd_search(library, args):
    """Full-text search command."""
    scopes = {}
    for scope in args.scope or []:
        key, sep, value = scope.partition("=")
        if not sep:
            print(f"✗ Invalid scope {scope!r}, expected key=value")
            return 1
        scopes[key] = value
    try:
        response = await library.search(args.query, scopes=scopes)
    except RuntimeError as e:
        print(f"✗ {e}")
        return 1
    print(f"Total hits: {response.total_hits}")
    for hit in response.hits:
        print(f"  [{hit.type}] {hit.product_id or '-'}\t{hit.raw_hit.get('name', '')}")
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="CDISC Library CLI",
        prog="cdisc-library"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument("--api-key", help="CDISC Library API key (default: $CDISC_LIBRARY_API_KEY)")
    parser.add_argument("--base-url", help="API root (default: $CDISC_LIBRARY_BASE_URL)")
    parser.add_argument(
        "--traffic",
        action="store_true",
        help="Print traffic used by the command"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands"
    )

    check_parser = subparsers.add_parser("check", help="Check connection and credentials")
    check_parser.set_defaults(func=cmd_check)

    products_parser = subparsers.add_parser("products", help="List products of the catalog")
    products_parser.add_argument("--type", default="short", choices=["short", "long"])
    products_parser.add_argument("--format", default="json", choices=["json", "csv"])
    products_parser.set_defaults(func=cmd_products)

    groups_parser = subparsers.add_parser("item-groups", help="List datasets/domains/data structures")
    groups_parser.add_argument("product", help="Product alias, e.g. sdtmig3-3")
    groups_parser.add_argument("--type", default="short", choices=["short", "long"])
    groups_parser.add_argument("--format", choices=["json", "csv"])
    groups_parser.set_defaults(func=cmd_item_groups)

    group_parser = subparsers.add_parser("item-group", help="Show items of an item group")
    group_parser.add_argument("name", help="Item group name, e.g. DM")
    group_parser.add_argument("product", help="Product alias, e.g. sdtmig3-3")
    group_parser.add_argument("--format", choices=["json", "csv"])
    group_parser.set_defaults(func=cmd_item_group)

    find_parser = subparsers.add_parser("find", help="Find items matching a name template")
    find_parser.add_argument("name", help="Item name, e.g. TRxxPGy")
    find_parser.add_argument("product", help="Product alias, e.g. adamig1.1")
    find_parser.add_argument(
        "--mode",
        default=MatchMode.FULL.value,
        choices=[mode.value for mode in MatchMode],
    )
    find_parser.add_argument("--first-only", action="store_true")
    find_parser.set_defaults(func=cmd_find)

    codelist_parser = subparsers.add_parser("codelist", help="Show terms of a code list")
    codelist_parser.add_argument("concept_id", help="Code list concept id, e.g. C66781")
    codelist_parser.add_argument("product", help="CT package alias, e.g. sdtmct-2019-12-20")
    codelist_parser.add_argument("--format", choices=["json", "csv"])
    codelist_parser.set_defaults(func=cmd_codelist)

    search_parser = subparsers.add_parser("search", help="Full-text search")
    search_parser.add_argument("query")
    search_parser.add_argument(
        "--scope",
        action="append",
        help="Scope filter as key=value (repeatable)"
    )
    search_parser.set_defaults(func=cmd_search)

    args = parser.parse_args(argv)

    if not hasattr(args, 'func'):
        parser.print_help()
        return 1

    setup_logging(args.verbose, ClientConfig.from_env().log_level)
    return asyncio.run(_run(args, args.func))


if __name__ == "__main__":
    sys.exit(main())
