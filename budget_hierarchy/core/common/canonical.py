import hashlib
import json
from typing import Any, Iterable

from pydantic import BaseModel


def canonical_json(payload: Any) -> str:
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )


def hash_canonical_payload(payload: Any) -> str:
    digest = hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def drop_keys(payload: Any, *, exclude: set[str]) -> Any:
    """Copy of a JSON-like payload without the excluded keys, at any depth."""
    if isinstance(payload, dict):
        return {
            key: drop_keys(value, exclude=exclude)
            for key, value in payload.items()
            if key not in exclude
        }
    if isinstance(payload, list):
        return [drop_keys(item, exclude=exclude) for item in payload]
    return payload


def content_fingerprint(models: Iterable[BaseModel], *, exclude: set[str]) -> str:
    payload = [model.model_dump(mode="json") for model in models]
    return hash_canonical_payload(drop_keys(payload, exclude=exclude))
