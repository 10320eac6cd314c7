"""Ask the service for the bank's raw status of one order and print it."""

import argparse
import json
import sys

import httpx


def main() -> None:
    """CLI entrypoint for one-off order status checks."""

    parser = argparse.ArgumentParser(description="Fetch the raw bank status of an order.")
    parser.add_argument("--api-url", default="http://localhost:8000")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--order-id", help="bank orderId (mdOrder)")
    group.add_argument("--order-number", help="our orderNumber")
    parser.add_argument("--timeout", type=float, default=25.0)
    args = parser.parse_args()

    body = {"orderId": args.order_id} if args.order_id else {"orderNumber": args.order_number}
    resp = httpx.post(f"{args.api_url}/api/payments/status", json=body, timeout=args.timeout)
    print(json.dumps(resp.json(), indent=2, ensure_ascii=False))
    if resp.is_error:
        sys.exit(1)


if __name__ == "__main__":
    main()
