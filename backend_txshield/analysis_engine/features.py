"""
Calldata feature vector for the ML scorer and similarity index.

128-bin byte-frequency histogram of the calldata; bin 0 is forced to a
strong marker value when the calldata is an approve() with a max amount.
"""

from __future__ import annotations

from backend_txshield.analysis_engine.models import normalize_calldata

FEATURE_SIZE = 128
# Prefix sent to the similarity index.
SIMILARITY_FEATURES = 20
UNLIMITED_APPROVAL_MARKER = 5.0


def calldata_features(data: str | None) -> list[float]:
    body = normalize_calldata(data)[2:]
    features = [0.0] * FEATURE_SIZE
    for i in range(0, len(body) - 1, 2):
        try:
            byte_val = int(body[i:i + 2], 16)
        except ValueError:
            continue
        features[byte_val * FEATURE_SIZE // 256] += 1
    if body[:8] == "095ea7b3" and body[72:136] == "f" * 64:
        features[0] = UNLIMITED_APPROVAL_MARKER
    return features
