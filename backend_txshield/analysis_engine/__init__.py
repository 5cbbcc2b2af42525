"""
Transaction analysis: calldata classification, threat scoring and
alternative generation.
"""

from backend_txshield.analysis_engine.alternatives import generate
from backend_txshield.analysis_engine.cache import ResultCache
from backend_txshield.analysis_engine.decoder import classify
from backend_txshield.analysis_engine.scorer import score

__all__ = ["ResultCache", "classify", "generate", "score"]
