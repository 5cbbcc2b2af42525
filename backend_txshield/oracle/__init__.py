"""
External collaborators: gas/price oracles, on-chain threat registry,
and the optional ML / similarity / LLM scorers.
"""

from backend_txshield.oracle.collaborators import Collaborators, call_guarded

__all__ = ["Collaborators", "call_guarded"]
