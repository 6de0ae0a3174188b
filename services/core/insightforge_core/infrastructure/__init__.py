"""Infrastructure components for InsightForge."""

from insightforge_core.infrastructure.crypto import (
    ALGORITHM,
    CryptoService,
    DecryptionError,
    InvalidKeyError,
)

__all__ = [
    "ALGORITHM",
    "CryptoService",
    "DecryptionError",
    "InvalidKeyError",
]
