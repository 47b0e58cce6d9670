from .durations import parse_duration
from .retry import compute_backoff

__all__ = ["parse_duration", "compute_backoff"]
