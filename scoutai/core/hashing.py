"""Hash computation for exact-duplicate detection."""
import hashlib
from typing import Optional


def compute_sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hashes_equal(hash1: Optional[str], hash2: Optional[str]) -> bool:
    """Exact match; empty or missing hashes never match."""
    return bool(hash1) and bool(hash2) and hash1 == hash2
