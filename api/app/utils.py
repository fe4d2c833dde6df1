import hashlib
from typing import Iterable, Optional


def request_fingerprint(images: Iterable[Optional[bytes]], prefix: str = "tryon:", length: int = 12) -> str:
    """Short SHA256 digest of the uploaded images, used to correlate log lines."""
    hasher = hashlib.sha256(prefix.encode("utf-8"))
    for chunk in images:
        if chunk:
            hasher.update(chunk)
    return hasher.hexdigest()[:length]
