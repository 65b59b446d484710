"""Catalog model records and their validation."""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .errors import RecordInvalid

PRICING_FIELDS = ("prompt", "completion", "request", "image", "input_cache_read", "input_cache_write")


@dataclass(frozen=True)
class Pricing:
    """Per-token or per-request cost fields as reported by the catalog."""
    prompt: Optional[str] = None
    completion: Optional[str] = None
    request: Optional[str] = None
    image: Optional[str] = None
    input_cache_read: Optional[str] = None
    input_cache_write: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> "Pricing":
        if not isinstance(data, dict):
            raise RecordInvalid(f"pricing must be an object, got {type(data).__name__}")
        values = {}
        for name in PRICING_FIELDS:
            value = data.get(name)
            values[name] = None if value is None else str(value)
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in PRICING_FIELDS if getattr(self, name) is not None}


@dataclass(frozen=True)
class ModelRecord:
    """Represents one model from the catalog.

    Records are immutable. ``provider`` is derived from the id prefix
    (``hf:deepseek-ai/DeepSeek-V3`` -> ``hf``) when the catalog does not
    report one.
    """
    id: str
    display_name: Optional[str] = None
    provider: Optional[str] = None
    context_length: Optional[int] = None
    max_output_length: Optional[int] = None
    pricing: Optional[Pricing] = None
    quantization: Optional[str] = None
    supported_features: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise RecordInvalid("model id must be a non-empty string")
        if self.provider is None:
            object.__setattr__(self, "provider", provider_from_id(self.id))
        if not isinstance(self.supported_features, frozenset):
            object.__setattr__(self, "supported_features", frozenset(self.supported_features))

    @property
    def name(self) -> str:
        """Model id with the provider prefix stripped."""
        return strip_provider(self.id)

    @property
    def label(self) -> str:
        return self.display_name or self.id

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> "ModelRecord":
        """Create a ModelRecord from one raw catalog entry.

        Raises RecordInvalid if the entry is unusable.
        """
        if not isinstance(data, dict):
            raise RecordInvalid(f"expected an object, got {type(data).__name__}")
        if "id" not in data:
            raise RecordInvalid("missing required field 'id'")

        pricing = data.get("pricing")
        features = data.get("supported_features") or []
        if not isinstance(features, (list, tuple, set, frozenset)):
            raise RecordInvalid("supported_features must be a list")

        return cls(
            id=data["id"],
            display_name=_optional_str(data, "display_name") or _optional_str(data, "name"),
            provider=_optional_str(data, "provider") or _optional_str(data, "owned_by"),
            context_length=_optional_int(data, "context_length"),
            max_output_length=_optional_int(data, "max_output_length"),
            pricing=Pricing.from_api_response(pricing) if pricing is not None else None,
            quantization=_optional_str(data, "quantization"),
            supported_features=frozenset(str(f) for f in features),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back into the raw catalog shape used by the cache file."""
        data: Dict[str, Any] = {"id": self.id, "object": "model"}
        if self.display_name is not None:
            data["name"] = self.display_name
        if self.provider is not None:
            data["provider"] = self.provider
        if self.context_length is not None:
            data["context_length"] = self.context_length
        if self.max_output_length is not None:
            data["max_output_length"] = self.max_output_length
        if self.pricing is not None:
            data["pricing"] = self.pricing.to_dict()
        if self.quantization is not None:
            data["quantization"] = self.quantization
        if self.supported_features:
            data["supported_features"] = sorted(self.supported_features)
        return data


@dataclass(frozen=True)
class ParseResult:
    """Outcome of validating one raw entry: exactly one of record/error is set."""
    record: Optional[ModelRecord] = None
    error: Optional[RecordInvalid] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


def parse_model_record(data: Any, index: Optional[int] = None) -> ParseResult:
    """Validate one raw catalog entry without raising."""
    try:
        return ParseResult(record=ModelRecord.from_api_response(data))
    except RecordInvalid as e:
        return ParseResult(error=RecordInvalid(e.reason, index))
    except (TypeError, ValueError) as e:
        return ParseResult(error=RecordInvalid(str(e), index))


def parse_model_records(entries: Iterable[Any]) -> Tuple[List[ModelRecord], List[RecordInvalid]]:
    """Validate each entry independently; bad entries never abort the batch."""
    records: List[ModelRecord] = []
    errors: List[RecordInvalid] = []
    for index, entry in enumerate(entries):
        result = parse_model_record(entry, index)
        if result.ok:
            records.append(result.record)
        else:
            errors.append(result.error)
    return records, errors


def provider_from_id(model_id: str) -> Optional[str]:
    """Return the ``provider`` part of a ``provider:name`` id, if any."""
    if ":" in model_id:
        provider = model_id.split(":", 1)[0]
        return provider or None
    return None


def strip_provider(model_id: str) -> str:
    if ":" in model_id:
        return model_id.split(":", 1)[1]
    return model_id


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RecordInvalid(f"field '{key}' must be a string")
    return value or None


def _optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise RecordInvalid(f"field '{key}' must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise RecordInvalid(f"field '{key}' must be an integer")
    if number < 0:
        raise RecordInvalid(f"field '{key}' must not be negative")
    return number
