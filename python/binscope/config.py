"""
Decode limits.

Container formats carry attacker-controlled counts and nesting. These limits
bound how much work a single decode may do before it gives up with
LimitExceeded.
"""

import argparse
from dataclasses import dataclass

# Matches the C-call ceiling of the Lua 5.1 reference loader.
DEFAULT_MAX_NESTING_DEPTH = 200
DEFAULT_MAX_RECORD_COUNT = 1_000_000


def non_negative_int(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative, got {value}")
    return value


@dataclass(frozen=True)
class DecodeLimits:
    """Upper bounds applied while decoding untrusted input."""

    max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH
    max_record_count: int = DEFAULT_MAX_RECORD_COUNT

    def __post_init__(self):
        if self.max_nesting_depth < 0 or self.max_record_count < 0:
            raise ValueError(f"Decode limits must be non-negative: {self}")

    @staticmethod
    def configure_argparse(p: argparse.ArgumentParser):
        p.add_argument(
            "--max-depth",
            type=non_negative_int,
            default=DEFAULT_MAX_NESTING_DEPTH,
            help="Maximum nesting depth for recursive structures",
        )
        p.add_argument(
            "--max-records",
            type=non_negative_int,
            default=DEFAULT_MAX_RECORD_COUNT,
            help="Maximum element count accepted for any single table",
        )

    @staticmethod
    def from_args(args: argparse.Namespace) -> "DecodeLimits":
        return DecodeLimits(
            max_nesting_depth=args.max_depth,
            max_record_count=args.max_records,
        )


DEFAULT_LIMITS = DecodeLimits()
