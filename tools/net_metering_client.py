#!/usr/bin/env python3
"""Status client for the net metering service.

Usage:
    poetry run python tools/net_metering_client.py [HOST] [PORT]
    poetry run python tools/net_metering_client.py -f [HOST] [PORT]
    poetry run python tools/net_metering_client.py -v [HOST] [PORT]

Options:
    -f, --follow    Keep polling and print a line per update
    -v, --verbose   Print the raw NetMetering.GetStatus JSON

Defaults to localhost:8080.
"""

import argparse
import asyncio
import json
from datetime import datetime

import httpx


def print_summary(status: dict) -> None:
    """Print totals, open window and last correction from a status dict."""
    print(
        f"  NET | import={status['imported_wh']:.3f} Wh  export={status['exported_wh']:.3f} Wh"
    )
    window = status["window"]
    changed = " (reference changed)" if status.get("changed_since_last_correction") else ""
    print(
        f"  WIN | import={window['imported_wh']:.4f} Wh  "
        f"export={window['exported_wh']:.4f} Wh{changed}"
    )
    baseline = status.get("baseline")
    if baseline is None:
        print("  REF | no baseline yet")
    else:
        print(
            f"  REF | total={baseline['total_act']:.2f} Wh  ret={baseline['total_act_ret']:.2f} Wh"
        )
    last = status.get("last_correction")
    if last is not None:
        stored = "" if last["persisted"] else "  NOT STORED"
        print(
            f"  COR | k={last['scale_factor']:.4f}  +import={last['imported_wh']:.3f} Wh  "
            f"+export={last['exported_wh']:.3f} Wh{stored}"
        )


async def fetch_status(client: httpx.AsyncClient, base_url: str) -> dict:
    resp = await client.get(f"{base_url}/rpc/NetMetering.GetStatus")
    resp.raise_for_status()
    return resp.json()


async def main(host: str, port: int, follow: bool, verbose: bool, interval: float) -> None:
    base_url = f"http://{host}:{port}"
    print(f"Connecting to {host}:{port}...")

    async with httpx.AsyncClient(timeout=5.0) as client:
        components = await client.get(f"{base_url}/rpc/Shelly.GetComponents")
        components.raise_for_status()
        print()
        print("=== Components ===")
        for comp in components.json()["components"]:
            name = comp["config"].get("name")
            print(f"  {comp['key']:12s} {json.dumps(name)}  {json.dumps(comp['status'])}")

        status = await fetch_status(client, base_url)
        print()
        print("=== Status ===")
        if verbose:
            print(json.dumps(status, indent=2))
        print_summary(status)

        if not follow:
            return

        print()
        print("=== Following updates (Ctrl+C to stop) ===", flush=True)
        try:
            while True:
                await asyncio.sleep(interval)
                status = await fetch_status(client, base_url)
                ts = datetime.now().strftime("%H:%M:%S")
                print(f"[{ts}]", flush=True)
                if verbose:
                    print(json.dumps(status, indent=2), flush=True)
                print_summary(status)
        except (KeyboardInterrupt, asyncio.CancelledError):
            pass


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Net metering status client")
    parser.add_argument("host", nargs="?", default="localhost", help="Service host")
    parser.add_argument("port", nargs="?", type=int, default=8080, help="Service port")
    parser.add_argument("-f", "--follow", action="store_true", help="Keep polling for updates")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print raw status JSON")
    parser.add_argument(
        "-i", "--interval", type=float, default=5.0, help="Polling interval in seconds"
    )
    args = parser.parse_args()
    asyncio.run(main(args.host, args.port, args.follow, args.verbose, args.interval))
