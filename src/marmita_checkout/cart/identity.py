"""Stable identity keys for cart lines."""

from __future__ import annotations

import hashlib
import json
from typing import Optional, Union

ProductId = Union[int, str]


def compute_identity(product_id: ProductId, notes: Optional[str] = None) -> str:
    """Derive the dedupe key for a product configured with ``notes``.

    Two lines share a key only when both the product and the notes match,
    so differently customized meals never merge. ``None`` and ``""`` both
    mean "no notes".
    """
    payload = json.dumps([str(product_id), notes or ""], ensure_ascii=False)
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]
    return f"{product_id}-{digest}"
