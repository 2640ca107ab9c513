"""Credit-metered task orchestration with failure containment."""

__version__ = "0.1.0"
