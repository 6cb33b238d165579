import os
import sys

import requests

base_url = os.getenv("FISHSTOCK_BASE_URL", "http://localhost:8000").rstrip("/")
actor_id = os.getenv("FISHSTOCK_ACTOR_ID")
actor_role = os.getenv("FISHSTOCK_ACTOR_ROLE", "manager")

if not actor_id:
    raise RuntimeError("FISHSTOCK_ACTOR_ID is required")

headers = {"X-Actor-Id": actor_id, "X-Actor-Role": actor_role}


def main() -> int:
    summary_response = requests.get(
        f"{base_url}/stock-movements/pending/summary",
        headers=headers,
        timeout=15,
    )
    summary_response.raise_for_status()

    low_stock_response = requests.get(f"{base_url}/products/low-stock", headers=headers, timeout=15)
    low_stock_response.raise_for_status()

    summary = summary_response.json()
    print(f"Pending movements: {summary['total']}")
    for movement_type, count in sorted(summary["by_type"].items()):
        if count:
            print(f"  {movement_type}: {count}")
    print(f"Low-stock products: {len(low_stock_response.json())}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except requests.RequestException as exc:
        print(f"FishStock API probe failed: {exc}", file=sys.stderr)
        raise SystemExit(1)
