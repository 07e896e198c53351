"""Cell value coercion for free-form fact sheets."""

from .normalizer import coerce_number, normalize_margin_pct, normalize_period

__all__ = [
    "coerce_number",
    "normalize_margin_pct",
    "normalize_period",
]
