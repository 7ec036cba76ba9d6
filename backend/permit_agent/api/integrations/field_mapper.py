"""
Field Mapper - Declarative vendor-to-canonical record mapping
"""

import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import structlog
import yaml
from fuzzywuzzy import fuzz, process
from pydantic import ValidationError

from permit_agent.api.extraction import patterns
from permit_agent.core.config import settings
from permit_agent.models.integration import APIConfig, CanonicalRecord, FieldSpec, FieldTransform, VendorSignature

logger = structlog.get_logger(__name__)

R = TypeVar('R', bound=CanonicalRecord)

ENVELOPE_KEYS = ("result", "data", "items")
MISSING = object()


class PermittingSystemsConfig:
    """Vendor configurations and detection signatures loaded from YAML"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or settings.PERMITTING_SYSTEMS_CONFIG_PATH
        self.config_data: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self):
        """Load permitting system configuration from YAML file"""
        try:
            config_file = Path(self.config_path)
            if config_file.exists():
                with open(config_file, 'r') as f:
                    self.config_data = yaml.safe_load(f) or {}
                logger.info("Permitting systems config loaded", path=self.config_path)
            else:
                logger.warning("Permitting systems config not found", path=self.config_path)
                self.config_data = {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load permitting systems config", error=str(e))
            self.config_data = {}

    def get_systems(self) -> Dict[str, APIConfig]:
        systems = {}
        for name, data in (self.config_data.get("systems") or {}).items():
            try:
                systems[name] = APIConfig(name=name, **data)
            except ValidationError as e:
                logger.error("Invalid permitting system config", system=name, error=str(e))
        return systems

    def get_signatures(self) -> List[VendorSignature]:
        return [
            VendorSignature(system=system, indicators=[str(i).lower() for i in indicators])
            for system, indicators in (self.config_data.get("signatures") or {}).items()
        ]

    def get_fuzzy_threshold(self) -> int:
        return int((self.config_data.get("fuzzy_matching") or {}).get("threshold", settings.FUZZY_MATCH_THRESHOLD))


def _text(value: Any) -> Any:
    if isinstance(value, dict):
        for key in ("text", "value", "name", "description"):
            if value.get(key):
                return str(value[key])
        return None
    return value


def condition_texts(value: Any) -> List[str]:
    """Vendor condition objects -> their display texts"""
    if not isinstance(value, list):
        return []
    texts = [_text(item) for item in value]
    return [str(text).strip() for text in texts if text]


def string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in re.split(r"[;\n]", value) if part.strip()]
    if isinstance(value, list):
        return condition_texts(value)
    return [str(value)]


def to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return patterns.parse_amount(value)
    return None


def address_text(value: Any) -> Optional[str]:
    """Structured address (or the first of a list) -> one line"""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str):
        return value.strip() or None
    if not isinstance(value, dict):
        return None
    street = value.get("streetAddress") or value.get("street") or " ".join(
        str(value[key]) for key in ("houseNumberStart", "streetName", "streetSuffix") if value.get(key)
    )
    city = _text(value.get("city"))
    state = _text(value.get("state"))
    zip_code = value.get("postalCode") or value.get("zip") or value.get("zipCode")
    region = " ".join(str(part) for part in (state, zip_code) if part)
    line = ", ".join(str(part) for part in (street, city, region) if part)
    return line or None


def first_name(value: Any) -> Optional[str]:
    """Display name of the first contact in a list"""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        full = value.get("fullName") or " ".join(
            str(value[key]) for key in ("firstName", "lastName") if value.get(key)
        )
        return full or value.get("businessName") or value.get("name")
    return str(value) if value else None


TRANSFORMS: Dict[str, Callable[[Any], Any]] = {
    "to_str": lambda value: None if value is None else str(value),
    "to_float": to_float,
    "lower": lambda value: str(value).lower() if value is not None else None,
    "upper": lambda value: str(value).upper() if value is not None else None,
    "strip": lambda value: str(value).strip() if value is not None else None,
    "text": _text,
    "condition_texts": condition_texts,
    "string_list": string_list,
    "address_text": address_text,
    "first_name": first_name,
}


def _normalize_key(key: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(key).lower())


class FieldMapper:
    """Evaluates a DataMapping against vendor payloads"""

    def __init__(self, fuzzy_threshold: Optional[int] = None):
        """
        Args:
            fuzzy_threshold: Minimum 0-100 similarity for matching a drifted
                vendor key; None disables fuzzy matching
        """
        self.fuzzy_threshold = fuzzy_threshold

    def resolve_path(self, item: Any, path: str) -> Any:
        """Follow a dotted path through dicts and list indices"""
        current = item
        for segment in path.split("."):
            if isinstance(current, list) and segment.isdigit():
                index = int(segment)
                current = current[index] if index < len(current) else MISSING
            elif isinstance(current, dict):
                if segment in current:
                    current = current[segment]
                else:
                    current = self._fuzzy_get(current, segment)
            else:
                return MISSING
            if current is MISSING:
                return MISSING
        return current

    def _fuzzy_get(self, data: Dict[str, Any], key: str) -> Any:
        if self.fuzzy_threshold is None or not data:
            return MISSING
        keys = [k for k in data.keys() if isinstance(k, str)]
        if not keys:
            return MISSING
        match = process.extractOne(key, keys, processor=_normalize_key, scorer=fuzz.ratio)
        if match and match[1] >= self.fuzzy_threshold:
            logger.debug("Fuzzy key match", expected=key, matched=match[0], score=match[1])
            return data[match[0]]
        return MISSING

    def map_field(self, item: Dict[str, Any], rule: FieldSpec) -> Any:
        """Value for one canonical field, or MISSING"""
        if isinstance(rule, str):
            rule = FieldTransform(source_field=rule)

        value = MISSING
        for path in [rule.source_field] + rule.fallbacks:
            value = self.resolve_path(item, path)
            if value is not MISSING and value is not None:
                break

        if value is not MISSING and value is not None and rule.transform:
            transform = TRANSFORMS.get(rule.transform)
            if transform is None:
                logger.warning("Unknown field transform", transform=rule.transform)
                value = MISSING
            else:
                try:
                    value = transform(value)
                except (TypeError, ValueError, AttributeError, KeyError) as e:
                    logger.debug("Field transform failed", transform=rule.transform, error=str(e))
                    value = MISSING

        if value is MISSING or value is None:
            return rule.default if rule.default is not None else MISSING
        return value

    def map_item(self, item: Dict[str, Any], mapping: Dict[str, FieldSpec]) -> Dict[str, Any]:
        """Canonical field dict; unmapped fields are omitted"""
        mapped = {}
        for field, rule in mapping.items():
            value = self.map_field(item, rule)
            if value is not MISSING:
                mapped[field] = value
        return mapped

    def to_record(self, item: Dict[str, Any], mapping: Dict[str, FieldSpec], model: Type[R]) -> R:
        """Build a canonical record, dropping fields whose values do not fit"""
        mapped = self.map_item(item, mapping) if mapping else dict(item)
        try:
            return model.model_validate(mapped)
        except ValidationError as e:
            rejected = {error["loc"][0] for error in e.errors() if error.get("loc")}
            logger.debug("Dropping fields that failed validation",
                         record=model.__name__,
                         fields=sorted(str(field) for field in rejected))
            return model.model_validate({k: v for k, v in mapped.items() if k not in rejected})

    def map_records(self, payload: Any, mapping: Dict[str, FieldSpec], model: Type[R]) -> List[R]:
        return [self.to_record(item, mapping, model) for item in unwrap_items(payload)]


def unwrap_items(payload: Any) -> List[Dict[str, Any]]:
    """Record list from a bare list or a result/data/items envelope"""
    if isinstance(payload, dict):
        for key in ENVELOPE_KEYS:
            if key in payload:
                payload = payload[key]
                break
        else:
            return []
    if isinstance(payload, dict):
        return [payload]
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def unwrap_single(payload: Any) -> Dict[str, Any]:
    """One record from a bare object or the first entry of an envelope"""
    if isinstance(payload, dict) and not any(key in payload for key in ENVELOPE_KEYS):
        return payload
    items = unwrap_items(payload)
    return items[0] if items else {}
