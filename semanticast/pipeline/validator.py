"""Output validator: enforces snapshot invariants on aggregate-summary-*.json.

Checks:
  1. Distribution buckets are non-negative and each sums to total_relevant
  2. Confidence averages within [0, 1]
  3. Suggestion starts with BUY/HOLD/SELL and carries the disclaimer
  4. Narrative and dominant-driver bounds
  5. Embedded forecast equals a fresh recomputation with its recorded constants

Usage:
    python -m semanticast.pipeline.validator output/aggregate-summary-2026-01-31.json
"""

import sys
from pathlib import Path
from typing import List, Tuple

from semanticast.core.errors import SnapshotFormatError
from semanticast.models.datatypes import (
    DISCLAIMER,
    MAX_DOMINANT_DRIVERS,
    NARRATIVE_MAX_LENGTH,
    SUGGESTION_ACTIONS,
    AggregateSnapshot,
)
from semanticast.pipeline.forecast import ForecastEngine
from semanticast.pipeline.store import load_snapshot


def validate_snapshot(snapshot: AggregateSnapshot) -> Tuple[bool, List[str]]:
    """Run all invariant checks against an in-memory snapshot.

    Returns:
        Tuple of ``(passed: bool, messages: list[str])``.
        ``messages`` contains PASS/FAIL lines for each check.
    """
    messages: List[str] = []
    passed = True

    def check(ok: bool, pass_msg: str, fail_msg: str) -> None:
        nonlocal passed
        messages.append(f"PASS  {pass_msg}" if ok else f"FAIL  {fail_msg}")
        passed = passed and ok

    n = snapshot.total_relevant

    # ── check 1: distributions ────────────────────────────────────────────────
    check(
        0 <= n <= snapshot.total_articles,
        f"total_relevant = {n} ≤ total_articles = {snapshot.total_articles}",
        f"total_relevant = {n} outside [0, total_articles = {snapshot.total_articles}]",
    )
    for name, dist in (
        ("price_impact_distribution", snapshot.price_impact_distribution),
        ("sentiment_distribution", snapshot.sentiment_distribution),
    ):
        buckets = list(vars(dist).values())
        check(
            all(b >= 0 for b in buckets) and dist.total == n,
            f"{name} sums to {n}",
            f"{name} = {vars(dist)} does not sum to {n} (or has negative buckets)",
        )

    # ── check 2: confidence averages ──────────────────────────────────────────
    for name in ("avg_relevance_confidence", "avg_sentiment_confidence", "avg_price_impact_confidence"):
        value = getattr(snapshot, name)
        check(0.0 <= value <= 1.0, f"{name} = {value:.3f} ∈ [0, 1]", f"{name} = {value} outside [0, 1]")

    # ── check 3: suggestion format ────────────────────────────────────────────
    suggestion = snapshot.suggestion
    check(
        suggestion.split(":", 1)[0].strip() in SUGGESTION_ACTIONS and DISCLAIMER in suggestion,
        f"suggestion format ({suggestion.split(':', 1)[0]})",
        f"suggestion must start with BUY/HOLD/SELL and include the disclaimer: {suggestion!r}",
    )

    # ── check 4: narrative / drivers ──────────────────────────────────────────
    check(
        0 < len(snapshot.narrative) <= NARRATIVE_MAX_LENGTH,
        f"narrative length = {len(snapshot.narrative)}",
        f"narrative length = {len(snapshot.narrative)} outside (0, {NARRATIVE_MAX_LENGTH}]",
    )
    check(
        len(snapshot.dominant_drivers) <= MAX_DOMINANT_DRIVERS,
        f"dominant_drivers count = {len(snapshot.dominant_drivers)}",
        f"dominant_drivers count = {len(snapshot.dominant_drivers)} > {MAX_DOMINANT_DRIVERS}",
    )

    # ── check 5: forecast reproducibility ─────────────────────────────────────
    recorded = snapshot.price_prediction
    if recorded is None:
        check(False, "", "price_prediction missing")
    else:
        fresh = ForecastEngine(
            baseline_volatility=recorded.baseline_volatility,
            basket_reference_price=recorded.current_basket_price,
        ).predict(snapshot)
        check(
            fresh == recorded,
            f"price_prediction reproducible ({recorded.predicted_change_percent:+.2f}%)",
            f"price_prediction differs from recomputation: {fresh.to_dict()}",
        )
        check(
            0.0 <= recorded.confidence <= 1.0,
            f"forecast confidence = {recorded.confidence:.3f} ∈ [0, 1]",
            f"forecast confidence = {recorded.confidence} outside [0, 1]",
        )

    return passed, messages


def validate(snapshot_path: str) -> Tuple[bool, List[str]]:
    """Load ``snapshot_path`` and run :func:`validate_snapshot` on it."""
    path = Path(snapshot_path)
    if not path.exists():
        return False, [f"FAIL  file not found: {snapshot_path}"]
    try:
        snapshot = load_snapshot(path)
    except SnapshotFormatError as exc:
        return False, [f"FAIL  could not read snapshot: {exc}"]
    return validate_snapshot(snapshot)


def main() -> int:
    if len(sys.argv) < 2:
        print("Usage: python -m semanticast.pipeline.validator <path_to_snapshot.json>")
        return 1
    passed, messages = validate(sys.argv[1])
    for msg in messages:
        print(msg)
    if passed:
        print("\nVALIDATION PASSED ✓")
        return 0
    else:
        print("\nVALIDATION FAILED ✗")
        return 1


if __name__ == "__main__":
    sys.exit(main())
