from __future__ import annotations

import argparse
import json
import re
from pathlib import Path
from typing import Any


ENTRY_RE = re.compile(r"^\[(?P<ts>[^\]]+)\]\s+stage=(?P<stage>\S+)\s+meta=(?P<meta>\{.*\})$")
DEFAULT_LOG_PATH = "/tmp/speedlearning_llm_raw.log"


def _percentile(values: list[float], p: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = (p / 100.0) * (len(ordered) - 1)
    lo = int(rank)
    hi = min(lo + 1, len(ordered) - 1)
    if lo == hi:
        return ordered[lo]
    w = rank - lo
    return ordered[lo] * (1.0 - w) + ordered[hi] * w


def _format_latency(values: list[float]) -> str:
    if not values:
        return "n/a"
    avg = sum(values) / len(values)
    p50 = _percentile(values, 50)
    p95 = _percentile(values, 95)
    return f"avg={avg:.2f}ms p50={p50:.2f}ms p95={p95:.2f}ms n={len(values)}"


def _format_rate(n: int, d: int) -> str:
    if d <= 0:
        return "n/a"
    return f"{(100.0 * n / d):.1f}% ({n}/{d})"


def parse_log(path: Path) -> dict[str, Any]:
    """Collect per-request latency and outcome counts from ``generation_end`` entries."""
    ok_latencies: list[float] = []
    failed_latencies: list[float] = []
    status_counts: dict[str, int] = {}

    for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        match = ENTRY_RE.match(line.strip())
        if not match or match.group("stage") != "generation_end":
            continue
        try:
            meta = json.loads(match.group("meta"))
        except json.JSONDecodeError:
            meta = {}

        status = str(meta.get("status", "unknown") or "unknown")
        status_counts[status] = status_counts.get(status, 0) + 1
        elapsed = float(meta.get("elapsed_ms", 0.0) or 0.0)
        if elapsed <= 0:
            continue
        if status == "ok":
            ok_latencies.append(elapsed)
        else:
            failed_latencies.append(elapsed)

    total = sum(status_counts.values())
    return {
        "ok_latencies": ok_latencies,
        "failed_latencies": failed_latencies,
        "status_counts": status_counts,
        "requests": total,
        "ok_requests": status_counts.get("ok", 0),
        "invalid_output_count": status_counts.get("invalid_output", 0),
    }


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Summarize presentation generation timings from the LLM debug log"
    )
    parser.add_argument(
        "--log-path",
        default=DEFAULT_LOG_PATH,
        help=f"Path to the raw LLM debug log (default: {DEFAULT_LOG_PATH})",
    )
    parser.add_argument(
        "--list-latencies",
        action="store_true",
        help="Print each successful generation latency in addition to the summary.",
    )
    args = parser.parse_args(argv)

    path = Path(args.log_path).expanduser()
    if not path.exists():
        raise SystemExit(f"log file not found: {path}")

    stats = parse_log(path)

    print(f"log_path: {path}")
    print(f"ok_latency: {_format_latency(stats['ok_latencies'])}")
    print(f"failed_latency: {_format_latency(stats['failed_latencies'])}")
    print("success_rate: " + _format_rate(stats["ok_requests"], stats["requests"]))
    print("invalid_output_count: " + str(stats["invalid_output_count"]))
    for status, count in sorted(stats["status_counts"].items()):
        print(f"status[{status}]: {count}")

    if args.list_latencies:
        print("ok_latency_values_ms:", ", ".join(f"{v:.2f}" for v in stats["ok_latencies"]) or "n/a")


if __name__ == "__main__":
    main()
