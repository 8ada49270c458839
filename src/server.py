"""Protean Engine runner for the FreshCart affiliates domain.

Starts Engine workers that process events asynchronously:
- OutboxProcessor: polls outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams, invokes projectors and event handlers
  (customer registrations and logins from Identity, order creation from Ordering)

Usage:
    python src/server.py                      # Run the affiliates engine
    python src/server.py --domain affiliates  # Same, explicitly
"""

import argparse
import asyncio

from protean.server.engine import Engine

DOMAINS = ["affiliates"]


def _get_domain(name):
    """Import and initialize a domain by name."""
    if name == "affiliates":
        from affiliates.domain import affiliates

        affiliates.init()
        return affiliates
    else:
        raise ValueError(f"Unknown domain: {name}")


async def run(domain_names):
    engines = []
    for name in domain_names:
        domain = _get_domain(name)
        engines.append(Engine(domain))

    await asyncio.gather(*(engine.run() for engine in engines))


def main():
    parser = argparse.ArgumentParser(description="FreshCart Engine runner")
    parser.add_argument(
        "--domain",
        choices=DOMAINS,
        help="Run a single domain engine (default: run all)",
    )
    args = parser.parse_args()

    domain_names = [args.domain] if args.domain else DOMAINS

    asyncio.run(run(domain_names))


if __name__ == "__main__":
    main()
