#!/usr/bin/env python3
"""Synthetic probe for the stock ledger service.

Creates a throwaway product, fires concurrent stock withdrawals at it and then
checks that the service never oversold: the final quantity is non-negative,
every accepted withdrawal has exactly one ledger entry, and every rejection
reported the stock that was actually left. Optionally verifies that the
``ledger_entries_total`` counter moved by the same amount.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

import httpx

_METRIC_LINE = re.compile(
    r"^(?P<name>[a-zA-Z_:][a-zA-Z0-9_:]*)(?:\{(?P<labels>[^}]*)\})?\s+(?P<value>[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)$"
)
_LABEL = re.compile(r'(?P<key>[a-zA-Z_][a-zA-Z0-9_]*)="(?P<value>[^"]*)"')


@dataclass(slots=True)
class MetricSample:
    name: str
    labels: Mapping[str, str]
    value: float


@dataclass(slots=True)
class Withdrawal:
    status_code: int
    duration_ms: float
    body: Mapping[str, Any]


class ProbeError(RuntimeError):
    def __init__(self, message: str, *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = dict(context or {})


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Race concurrent stock withdrawals against the stock ledger")
    parser.add_argument(
        "--base-url",
        default=os.getenv("STOCKLEDGER_BASE_URL", "http://127.0.0.1:8000"),
        help="Base URL for the stock ledger service (default: %(default)s or STOCKLEDGER_BASE_URL)",
    )
    parser.add_argument(
        "--metrics-path",
        default=os.getenv("STOCKLEDGER_METRICS_PATH", "/metrics"),
        help="Path to Prometheus metrics endpoint (default: %(default)s or STOCKLEDGER_METRICS_PATH)",
    )
    parser.add_argument(
        "--skip-metrics",
        action="store_true",
        help="Skip verification of Prometheus metric deltas",
    )
    parser.add_argument(
        "--actor",
        default=os.getenv("STOCKLEDGER_PROBE_ACTOR", "synthetic-probe"),
        help="Value sent as X-Actor-Id (default: %(default)s or STOCKLEDGER_PROBE_ACTOR)",
    )
    parser.add_argument("--initial-stock", type=int, default=8, help="Starting quantity (default: %(default)s)")
    parser.add_argument("--withdrawal", type=int, default=5, help="Units taken per request (default: %(default)s)")
    parser.add_argument("--concurrency", type=int, default=4, help="Concurrent withdrawals (default: %(default)s)")
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=5.0,
        help="HTTP client timeout in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--keep-product",
        action="store_true",
        help="Do not retire the probe product afterwards",
    )
    return parser.parse_args()


def parse_metrics(text: str) -> List[MetricSample]:
    samples: List[MetricSample] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _METRIC_LINE.match(stripped)
        if not match:
            continue
        labels = {m.group("key"): m.group("value") for m in _LABEL.finditer(match.group("labels") or "")}
        samples.append(MetricSample(name=match.group("name"), labels=labels, value=float(match.group("value"))))
    return samples


def find_metric_value(samples: Sequence[MetricSample], name: str, *, labels: Mapping[str, str]) -> float:
    for sample in samples:
        if sample.name == name and all(sample.labels.get(k) == v for k, v in labels.items()):
            return sample.value
    return 0.0


async def fetch_metrics(client: httpx.AsyncClient, path: str) -> List[MetricSample]:
    response = await client.get(path)
    response.raise_for_status()
    return parse_metrics(response.text)


async def _create_product(client: httpx.AsyncClient, quantity: int) -> Dict[str, Any]:
    identifier = uuid.uuid4().hex[:8]
    response = await client.post(
        "/products",
        json={
            "sku": f"PROBE-{identifier}",
            "name": f"Synthetic probe {identifier}",
            "quantity": quantity,
            "price": "1.00",
            "lowStockThreshold": 0,
        },
    )
    if response.status_code != 201:
        raise ProbeError(
            "Failed to create probe product",
            context={"status_code": response.status_code, "body": response.text},
        )
    return response.json()


async def _withdraw(client: httpx.AsyncClient, product_id: int, amount: int, index: int) -> Withdrawal:
    start = time.monotonic()
    response = await client.post(
        f"/products/{product_id}/adjustments",
        json={"delta": -amount, "reason": f"synthetic withdrawal {index}"},
    )
    duration = (time.monotonic() - start) * 1000.0
    return Withdrawal(status_code=response.status_code, duration_ms=duration, body=response.json())


def _check_outcome(
    withdrawals: Sequence[Withdrawal],
    *,
    initial: int,
    amount: int,
    final_quantity: int,
    ledger: Sequence[Mapping[str, Any]],
) -> int:
    accepted = [w for w in withdrawals if w.status_code == 200]
    rejected = [w for w in withdrawals if w.status_code == 409]
    unexpected = [w for w in withdrawals if w.status_code not in (200, 409)]
    if unexpected:
        raise ProbeError(
            "Unexpected status from adjustment",
            context={"responses": [{"status": w.status_code, "body": w.body} for w in unexpected]},
        )
    if final_quantity < 0:
        raise ProbeError("Quantity went negative", context={"quantity": final_quantity})
    if final_quantity != initial - amount * len(accepted):
        raise ProbeError(
            "Final quantity does not match accepted withdrawals",
            context={"quantity": final_quantity, "accepted": len(accepted), "initial": initial},
        )
    if len(accepted) != initial // amount:
        raise ProbeError(
            "Service rejected withdrawals that stock could cover",
            context={"accepted": len(accepted), "expected": initial // amount},
        )
    for withdrawal in rejected:
        available = withdrawal.body.get("detail", {}).get("details", {}).get("available")
        if available is None or available >= amount:
            raise ProbeError("Rejection reported wrong availability", context={"body": withdrawal.body})

    stock_out = [entry for entry in ledger if entry.get("action") == "STOCK_OUT"]
    if len(stock_out) != len(accepted):
        raise ProbeError(
            "Ledger entries do not match accepted withdrawals",
            context={"entries": len(stock_out), "accepted": len(accepted)},
        )
    for entry in stock_out:
        if entry["quantityChange"] != entry["quantityAfter"] - entry["quantityBefore"]:
            raise ProbeError("Ledger entry change is inconsistent", context={"entry": entry})
    return len(accepted)


async def run_probe(args: argparse.Namespace) -> Dict[str, Any]:
    timeout = httpx.Timeout(args.request_timeout)
    headers = {"X-Actor-Id": args.actor}
    async with httpx.AsyncClient(base_url=args.base_url, timeout=timeout, headers=headers) as client:
        metrics_before: Sequence[MetricSample] = ()
        if not args.skip_metrics:
            metrics_before = await fetch_metrics(client, args.metrics_path)

        product = await _create_product(client, args.initial_stock)
        product_id = int(product["id"])
        withdrawals = await asyncio.gather(
            *(_withdraw(client, product_id, args.withdrawal, i) for i in range(args.concurrency))
        )

        current = await client.get(f"/products/{product_id}")
        current.raise_for_status()
        ledger = await client.get(f"/products/{product_id}/ledger")
        ledger.raise_for_status()
        accepted = _check_outcome(
            withdrawals,
            initial=args.initial_stock,
            amount=args.withdrawal,
            final_quantity=int(current.json()["quantity"]),
            ledger=ledger.json(),
        )

        metric_delta = None
        if not args.skip_metrics:
            metrics_after = await fetch_metrics(client, args.metrics_path)
            labels = {"action": "STOCK_OUT"}
            metric_delta = find_metric_value(metrics_after, "ledger_entries_total", labels=labels) - find_metric_value(
                metrics_before, "ledger_entries_total", labels=labels
            )
            if metric_delta < accepted:
                raise ProbeError(
                    "ledger_entries_total did not count every withdrawal",
                    context={"delta": metric_delta, "accepted": accepted},
                )

        if not args.keep_product:
            (await client.delete(f"/products/{product_id}")).raise_for_status()

        return {
            "status": "ok",
            "productId": product_id,
            "accepted": accepted,
            "rejected": len(withdrawals) - accepted,
            "finalQuantity": int(current.json()["quantity"]),
            "ledgerEntriesDelta": metric_delta,
            "durationsMs": [round(w.duration_ms, 2) for w in withdrawals],
        }


async def main_async() -> int:
    args = parse_args()
    try:
        result = await run_probe(args)
    except (ProbeError, httpx.HTTPError) as exc:
        context = exc.context if isinstance(exc, ProbeError) else {"exc_type": exc.__class__.__name__}
        payload = {"status": "error", "message": str(exc), "context": context}
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 1
    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
