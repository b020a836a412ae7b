#!/usr/bin/env python3
"""42 API request CLI.

Command-line tool for issuing authenticated requests against the 42 API.

Usage:
    fortytwo_request.py GET /campus/1                  # Single request
    fortytwo_request.py GET /campus --all              # Every page, concatenated
    fortytwo_request.py GET /users --param filter[primary_campus_id]=1
    fortytwo_request.py PATCH /users/42 --body '{"user": {"kind": "admin"}}'

Credentials come from FORTYTWO_CLIENT_ID / FORTYTWO_CLIENT_SECRET (or .env).
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pydantic import ValidationError

from fortytwo.client import FortyTwoClient
from fortytwo.config import get_config
from fortytwo.errors import ApiError, FortyTwoError
from fortytwo.logging_config import configure_logging


def parse_params(pairs: list[str]) -> dict[str, str]:
    """Turn repeated ``key=value`` arguments into a query dict."""
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --param '{pair}'. Expected key=value.")
        params[key] = value
    return params


async def run_request(config, args) -> object:
    """Execute the requested call and return the decoded result."""
    params = parse_params(args.param)
    body = json.loads(args.body) if args.body else None
    method = args.method.upper()

    async with FortyTwoClient.from_config(config) as client:
        if args.all:
            if method != "GET":
                raise ValueError("--all only applies to GET requests")
            return await client.get_all(
                args.endpoint, per_page=args.per_page, params=params or None
            )
        envelope = await client.request(
            method, args.endpoint, body=body, params=params or None
        )
        return envelope.body


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Issue an authenticated request against the 42 API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s GET /campus --all               # All campuses, every page
  %(prog)s GET /campus/9                   # A single campus
  %(prog)s DELETE /events_users/123        # Delete a resource

Configuration:
  Set credentials in the environment or .env:
    FORTYTWO_CLIENT_ID=your_uid
    FORTYTWO_CLIENT_SECRET=your_secret
        """,
    )
    parser.add_argument("method", choices=["GET", "POST", "PATCH", "DELETE", "get", "post", "patch", "delete"])
    parser.add_argument("endpoint", help="Endpoint relative to the API base URL")
    parser.add_argument("--all", action="store_true", help="Fetch every page (GET only)")
    parser.add_argument("--per-page", type=int, default=100, help="Page size for --all")
    parser.add_argument(
        "--param", action="append", default=[], help="Query parameter key=value (repeatable)"
    )
    parser.add_argument("--body", help="JSON request body")

    return parser.parse_args(argv)


def main(argv=None):
    """Main CLI entry point."""
    args = parse_args(argv)

    try:
        config = get_config()
    except ValidationError as e:
        print(f"ERROR: Invalid configuration: {e}")
        sys.exit(1)
    configure_logging(config.log_level, config.log_format)

    if not config.has_credentials:
        print("ERROR: FORTYTWO_CLIENT_ID and FORTYTWO_CLIENT_SECRET are not set")
        sys.exit(1)

    try:
        result = asyncio.run(run_request(config, args))
    except ApiError as e:
        print(f"ERROR: {e}")
        if e.body is not None:
            print(json.dumps(e.body, indent=2))
        sys.exit(1)
    except (FortyTwoError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
