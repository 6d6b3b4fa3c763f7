"""OSSF Security Baseline attestation tool."""

__version__ = "1.0.0"
