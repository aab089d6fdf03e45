#!/usr/bin/env python3
"""
Example walk through the CDISC Library with the async client.

This script demonstrates alias resolution, lazy product loading, item
matching, code list lookup and search. It needs a CDISC Library API key
in the CDISC_LIBRARY_API_KEY environment variable.
"""

import asyncio
import sys

from cdisc_library_client import NOT_FOUND, CdiscLibrary, ClientConfig


async def main() -> int:
    """Demonstrate client usage."""

    print("CDISC Library Client Example")
    print("=" * 50)

    config = ClientConfig.from_env()
    if not config.api_key:
        print("Set CDISC_LIBRARY_API_KEY to run this example")
        return 1

    async with CdiscLibrary.from_config(config) as library:
        # 1. Check the connection
        print("\n1. Checking connection...")
        status = await library.check_connection()
        print(f"   {status['statusCode']} {status['description']}")
        if status["statusCode"] != 200:
            return 1

        # 2. Resolve loose product names
        print("\n2. Resolving product aliases...")
        for alias in ("sdtmig 3.3", "ADaM-IG 1.1", "cdashig2-0"):
            print(f"   {alias!r} -> {await library.resolve_alias(alias)}")

        # 3. Load a product and list its data structures
        print("\n3. Loading ADaMIG v1.1...")
        adamig = await library.get_product("adamig1.1")
        if adamig is not None:
            print(f"   {adamig.label} (fully loaded: {adamig.fully_loaded})")
            for name, structure in (adamig.data_structures or {}).items():
                print(f"   └─ {name}: {structure.label}")

        # 4. Fetch a single dataset without loading the whole product
        print("\n4. Fetching SDTMIG v3.3 DM...")
        dm = await library.get_item_group("DM", "sdtmig33")
        if dm is None or dm is NOT_FOUND:
            print("   DM not available")
        else:
            for item in list(dm.get_items().values())[:5]:
                print(f"   - {item.name}: {item.label}")

        # 5. Match concrete names against templated variables
        print("\n5. Matching TR01PG12 against loaded products...")
        for item in library.find_matching_items("TR01PG12"):
            print(f"   - {item.id} ({item.label})")

        # 6. Look up a code list
        print("\n6. Looking up code list C66731...")
        ct = await library.get_product("sdtmct-2019-12-20", shallow=True)
        if ct is not None:
            sex = await ct.get_code_list("C66731")
            if sex:
                print(f"   {sex.name}: {[term.submission_value for term in sex.terms]}")

        # 7. Search
        print("\n7. Searching for 'AETERM'...")
        response = await library.search("AETERM", page_size=5, load_all=False)
        print(f"   Total hits: {response.total_hits}")
        for hit in response.hits:
            print(f"   - [{hit.type}] {hit.product_id}")

        print(f"\nTraffic: {library.get_traffic_stats()}")

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
