"""devflow: phase-driven development workflow with a persistent project store."""

__version__ = "0.1.0"
