"""argparse ``type=`` callables for numeric pipeline options.

``--min-total 0`` or ``--pseudocount -1`` are rejected at parse time with a
usage message instead of failing inside the pipeline.
"""

from __future__ import annotations

import argparse


def _positive_int(value: str) -> int:
    """Integer >= 1, e.g. the minimum total count per gene."""
    try:
        ivalue = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got '{value}'") from None
    if ivalue < 1:
        raise argparse.ArgumentTypeError(f"{value} must be at least 1")
    return ivalue


def _positive_float(value: str) -> float:
    """Finite float > 0, e.g. the log2 pseudocount."""
    try:
        fvalue = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got '{value}'") from None
    if not fvalue > 0 or fvalue == float("inf"):
        raise argparse.ArgumentTypeError(f"{value} must be a positive finite number")
    return fvalue
