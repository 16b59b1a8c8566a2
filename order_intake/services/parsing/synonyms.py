"""Header vocabulary used by schema inference.

The vocabulary is read from ``synonyms.yaml`` into an immutable
:class:`SynonymConfig`. Callers build one and pass it to the components that
need it; nothing here is cached at module level.
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from order_intake.core.exceptions import ConfigurationError
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_SYNONYMS_PATH = Path(__file__).with_name("synonyms.yaml")

# Priority order used when reporting mappings
CANONICAL_FIELDS: Tuple[str, ...] = (
    "customer",
    "sku",
    "gtin",
    "product_name",
    "quantity",
    "unit_price",
    "line_total",
    "subtotal",
    "tax",
    "total",
)

_SEPARATORS = re.compile(r"[_\-\s]+")


def normalize_header(header: Optional[str]) -> str:
    """Lower-case, trim and collapse ``_``, ``-`` and whitespace runs to one space."""
    if header is None:
        return ""
    return _SEPARATORS.sub(" ", str(header).strip().lower()).strip()


def _normalize_all(values: List[str]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for value in values:
        normalized = normalize_header(value)
        if normalized:
            seen.setdefault(normalized, None)
    return tuple(seen)


class SynonymConfig(BaseModel):
    """Frozen header vocabulary."""

    model_config = ConfigDict(frozen=True)

    fields: Dict[str, Tuple[str, ...]]
    type_requirements: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)
    header_keywords: Tuple[str, ...] = ()
    total_keywords: Tuple[str, ...] = ()
    customer_keywords: Tuple[str, ...] = ()

    @field_validator("fields", mode="before")
    @classmethod
    def _normalize_fields(cls, value):
        return {field: _normalize_all(list(synonyms or [])) for field, synonyms in value.items()}

    @field_validator("total_keywords", "customer_keywords", "header_keywords", mode="before")
    @classmethod
    def _lower_keywords(cls, value):
        return tuple(str(keyword).strip().lower() for keyword in value or [])

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "SynonymConfig":
        """Load the vocabulary from a YAML file (the bundled one by default)."""
        source = Path(path) if path else DEFAULT_SYNONYMS_PATH
        try:
            with source.open("r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Unable to load synonyms from {source}", original_error=e)

        if not raw.get("fields"):
            raise ConfigurationError(f"Synonym file {source} defines no fields")

        config = cls(**raw)
        LOGGER.info(
            "Loaded header synonyms",
            extra={"path": str(source), "fields": len(config.fields)},
        )
        return config

    def synonyms_for(self, field: str) -> Tuple[str, ...]:
        return self.fields.get(field, ())

    def allowed_types(self, field: str) -> Optional[Tuple[str, ...]]:
        return self.type_requirements.get(field)

    @property
    def canonical_fields(self) -> List[str]:
        ordered = [field for field in CANONICAL_FIELDS if field in self.fields]
        return ordered + [field for field in self.fields if field not in CANONICAL_FIELDS]
