"""
Backend TX Shield: pre-signing analysis for Ethereum transaction requests.

Classifies unsigned transactions by selector, scores their risk with a
rule table plus optional external signals, and proposes safer rewritten
alternatives. Modular architecture: analysis engine, external oracles,
API server.
"""

__version__ = "0.1.0"
