"""
VIGIL - Behavioral anomaly scoring for multi-tenant authentication

Keeps a running behavioral profile per (tenant, client), matches
pre-computed indicators against suspicious-behavior patterns, and turns
the result into a threat level and an actionable recommendation.
"""

__version__ = "0.1.0"
