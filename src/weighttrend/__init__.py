"""weighttrend: adaptive weight trend estimation with materialized results."""

__version__ = "0.1.0"
