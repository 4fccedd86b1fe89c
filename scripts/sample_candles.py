from __future__ import annotations

import argparse
import os
import random
import sys
from datetime import datetime, timezone

# Add repo root to Python import path so `import candlefeed...` works
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from candlefeed.candles.synthetic import generate_candles
from candlefeed.indicators.fibonacci import retracement_levels


def run(count: int = 30, seed: int | None = None) -> None:
    """
    Prints sample candles plus their Fibonacci levels.

    Same generator the server falls back to when Alpha Vantage is unavailable.
    """
    rng = random.Random(seed)
    series = generate_candles(count=count, rng=rng)

    for c in series:
        day = datetime.fromtimestamp(c.timestamp / 1000.0, tz=timezone.utc).date()
        print(f"{day} O={c.open} H={c.high} L={c.low} C={c.close} V={c.volume}")

    fib = retracement_levels(series)
    print("\nFibonacci levels:")
    for label, price in fib.levels.items():
        print(f"  {label:>6} {price}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--count", type=int, default=30, help="How many daily candles")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    args = parser.parse_args()
    run(count=args.count, seed=args.seed)
