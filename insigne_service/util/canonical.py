from __future__ import annotations

import json
from typing import Any


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def truncated_json(obj: Any, max_chars: int) -> str:
    return canonical_json(obj)[:max_chars]
