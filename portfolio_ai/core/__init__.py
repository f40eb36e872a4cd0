"""
Core modules for the portfolio assistant.

This package contains intent classification, model routing and pricing,
the semantic query cache, usage limits and tax-loss harvesting analysis.
"""
