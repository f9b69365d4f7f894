"""
Mapping rule set models.

A MappingRuleSet is the persisted, per-destination declarative configuration that
says how canonical order records become rows of that destination's spreadsheet.

JSON shape (camelCase on disk, snake_case in Python):

    {
      "destinationKey": "12",
      "destinationKind": "manufacturer",
      "headerRow": 1,
      "dataStartRow": 2,
      "fieldBindings":    {"recipientName": "B", "address": "D"},
      "templateBindings": {"A": "{{manufacturerName}}"},
      "fieldFallbacks":   {"orderName": "{{recipientName}}"},
      "exportPipeline":   {"copyPrefixRows": true, "columns": [{"from": 3}, {"const": "Z"}]}
    }

The older storage form (`columnMappings` + `fixedValues` with `FIELD:` keys) is
accepted on load and converted.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from openpyxl.utils import column_index_from_string, get_column_letter
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as SchemaError

from ordersheet.blueprint.fields import CanonicalFields
from ordersheet.errors import ValidationError
from ordersheet.render.template_language import TemplateExpression, compile_template

logger = logging.getLogger(__name__)

COLUMN_LETTER_RE = re.compile(r"^[A-Z]+$")
FIELD_KEY_PREFIX = "FIELD:"
COMMON_DESTINATION_KEY = "default"

DestinationKind = Literal["manufacturer", "shopping_mall", "common", "invoice"]
DESTINATION_KINDS = ("manufacturer", "shopping_mall", "common", "invoice")


def _normalize_letter(value: str) -> str:
    letter = str(value).strip().upper()
    if not COLUMN_LETTER_RE.match(letter):
        raise ValueError(f"'{value}' is not a column letter (expected A, B, ..., AA)")
    return letter


def _check_template(value: str) -> str:
    try:
        compile_template(value)
    except ValidationError as e:
        raise ValueError(str(e)) from e
    return value


def _canonical_field(name: str) -> str:
    """Canonical key for a field named by key or label ('받는인' -> 'recipientName')."""
    key = CanonicalFields.resolve_direct(str(name).strip())
    if key is None:
        raise ValueError(f"'{name}' is not a known order field")
    return key


def _convert_legacy_shape(data: Dict[str, Any]) -> Dict[str, Any]:
    """`columnMappings` + `fixedValues` (with `FIELD:` keys) -> current binding maps."""
    data = dict(data)
    kind = data.get("destinationKind", data.get("destination_kind"))
    field_bindings = dict(data.get("fieldBindings") or {})
    header_bindings = dict(data.get("headerBindings") or {})
    template_bindings = dict(data.get("templateBindings") or {})
    field_fallbacks = dict(data.get("fieldFallbacks") or {})

    legacy_mappings = data.pop("columnMappings", None) or {}
    if kind == "shopping_mall":
        # Channel uploads stored {input header: field}
        for header, field_key in legacy_mappings.items():
            header_bindings.setdefault(header, field_key)
    else:
        for field_key, letter in legacy_mappings.items():
            field_bindings.setdefault(field_key, letter)

    for raw_key, value in (data.pop("fixedValues", None) or {}).items():
        key = raw_key.strip()
        if key.upper().startswith(FIELD_KEY_PREFIX):
            field_fallbacks[key[len(FIELD_KEY_PREFIX):].strip()] = value
        elif COLUMN_LETTER_RE.match(key):
            template_bindings[key] = value
        else:
            field_fallbacks[key] = value

    data["fieldBindings"] = field_bindings
    data["headerBindings"] = header_bindings
    data["templateBindings"] = template_bindings
    data["fieldFallbacks"] = field_fallbacks
    return data


def _fold_aliased_field_bindings(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    A field bound under both its key and its label keeps the first letter in
    fieldBindings; later letters move to columnBindings so the validator
    reports the field as bound twice.
    """
    name = "fieldBindings" if "fieldBindings" in data else "field_bindings"
    bindings = data.get(name)
    if not isinstance(bindings, dict):
        return data

    folded: Dict[str, Any] = {}
    extra: Dict[str, str] = {}
    for raw_name, letter in bindings.items():
        if not str(letter).strip():
            continue
        key = CanonicalFields.resolve_direct(str(raw_name).strip()) or raw_name
        if key in folded:
            extra[letter] = key
        else:
            folded[key] = letter
    if not extra:
        return data

    data = dict(data)
    data[name] = folded
    columns_name = "column_bindings" if "column_bindings" in data else "columnBindings"
    columns = dict(data.get(columns_name) or {})
    for letter, key in extra.items():
        columns.setdefault(letter, key)
    data[columns_name] = columns
    return data


# ---------------------------------------------------------------------------
# Export pipeline
# ---------------------------------------------------------------------------

class InputSource(BaseModel):
    type: Literal["input"] = "input"
    column_index: int = Field(..., ge=1, alias="columnIndex")

    class Config:
        populate_by_name = True


class ConstSource(BaseModel):
    type: Literal["const"] = "const"
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return "" if value is None else str(value)


class ExportColumn(BaseModel):
    header: Optional[str] = None
    source: Union[InputSource, ConstSource] = Field(..., discriminator="type")

    @model_validator(mode="before")
    @classmethod
    def _accept_short_form(cls, data: Any) -> Any:
        # {from: 3} / {const: "Z"} are shorthands for the tagged source
        if isinstance(data, dict) and "source" not in data:
            if "from" in data:
                return {"header": data.get("header"), "source": {"type": "input", "columnIndex": data["from"]}}
            if "const" in data:
                return {"header": data.get("header"), "source": {"type": "const", "value": data["const"]}}
        return data

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.source, InputSource):
            result: Dict[str, Any] = {"from": self.source.column_index}
        else:
            result = {"const": self.source.value}
        if self.header is not None:
            result["header"] = self.header
        return result


class ExportPipelineConfig(BaseModel):
    copy_prefix_rows: bool = Field(True, alias="copyPrefixRows")
    columns: List[ExportColumn] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    def to_dict(self) -> Dict[str, Any]:
        return {"copyPrefixRows": self.copy_prefix_rows, "columns": [c.to_dict() for c in self.columns]}


# ---------------------------------------------------------------------------
# Output column rules (one per column letter)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldColumnRule:
    column: str
    field: str


@dataclass(frozen=True)
class TemplateColumnRule:
    column: str
    template: TemplateExpression


@dataclass(frozen=True)
class EmptyColumnRule:
    column: str


ColumnRule = Union[FieldColumnRule, TemplateColumnRule, EmptyColumnRule]


# ---------------------------------------------------------------------------
# Rule set
# ---------------------------------------------------------------------------

class MappingRuleSet(BaseModel):
    destination_key: str = Field(..., min_length=1, alias="destinationKey")
    destination_kind: DestinationKind = Field("manufacturer", alias="destinationKind")
    header_row: int = Field(1, ge=1, alias="headerRow")
    data_start_row: int = Field(2, ge=2, alias="dataStartRow")
    field_bindings: Dict[str, str] = Field(default_factory=dict, alias="fieldBindings")
    # Column-oriented bindings (letter -> field); several letters may name one field
    column_bindings: Dict[str, str] = Field(default_factory=dict, alias="columnBindings")
    template_bindings: Dict[str, str] = Field(default_factory=dict, alias="templateBindings")
    field_fallbacks: Dict[str, str] = Field(default_factory=dict, alias="fieldFallbacks")
    # Source-side bindings for channel uploads: input header text -> field
    header_bindings: Dict[str, str] = Field(default_factory=dict, alias="headerBindings")
    export_pipeline: Optional[ExportPipelineConfig] = Field(None, alias="exportPipeline")
    currency_as_number: bool = Field(False, alias="currencyAsNumber")
    sheet_name: Optional[str] = Field(None, alias="sheetName")
    template_file: Optional[str] = Field(None, alias="templateFile")
    display_name: str = Field("", alias="displayName")

    class Config:
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def _normalize_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if "columnMappings" in data or "fixedValues" in data:
            data = _convert_legacy_shape(data)
        return _fold_aliased_field_bindings(data)

    @field_validator("header_bindings")
    @classmethod
    def _check_header_bindings(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {h.strip(): _canonical_field(f) for h, f in value.items() if h.strip() and f and f.strip()}

    @field_validator("field_bindings")
    @classmethod
    def _check_field_binding_letters(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {_canonical_field(f): _normalize_letter(letter) for f, letter in value.items()
                if f.strip() and str(letter).strip()}

    @field_validator("column_bindings")
    @classmethod
    def _check_column_binding_letters(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {_normalize_letter(letter): _canonical_field(f) for letter, f in value.items() if f and f.strip()}

    @field_validator("template_bindings")
    @classmethod
    def _check_template_bindings(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {_normalize_letter(letter): _check_template(tpl or "") for letter, tpl in value.items()}

    @field_validator("field_fallbacks")
    @classmethod
    def _check_field_fallbacks(cls, value: Dict[str, str]) -> Dict[str, str]:
        fallbacks: Dict[str, str] = {}
        for name, template in value.items():
            if not name.strip():
                continue
            key = _canonical_field(name)
            if key in fallbacks:
                raise ValueError(f"Field '{key}' has more than one fallback ('{name}' names it again)")
            fallbacks[key] = _check_template(template or "")
        return fallbacks

    @model_validator(mode="after")
    def _check_rows_and_columns(self) -> "MappingRuleSet":
        if self.data_start_row <= self.header_row:
            raise ValueError(
                f"dataStartRow ({self.data_start_row}) must be greater than headerRow ({self.header_row})"
            )
        # One rule per output column
        owners: Dict[str, str] = {}
        for letter, owner in self._raw_column_owners():
            previous = owners.get(letter)
            if previous is not None and previous != owner:
                raise ValueError(f"Column {letter} has more than one rule ({previous} and {owner})")
            owners[letter] = owner
        return self

    def _raw_column_owners(self) -> List[Tuple[str, str]]:
        owners = [(letter, f"field:{f}") for f, letter in self.field_bindings.items()]
        owners += [(letter, f"field:{f}") for letter, f in self.column_bindings.items()]
        owners += [(letter, "template") for letter in self.template_bindings]
        return owners

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **overrides) -> "MappingRuleSet":
        """Build from persisted JSON, converting schema failures to ValidationError."""
        payload = dict(data)
        payload.update(overrides)
        try:
            return cls.model_validate(payload)
        except SchemaError as e:
            issues = [
                {
                    "issue": ".".join(str(p) for p in err.get("loc", ())) or "ruleset",
                    "detail": err.get("msg", ""),
                    "fix": "Correct the mapping configuration value",
                }
                for err in e.errors()
            ]
            raise ValidationError(f"Invalid mapping rule set: {issues[0]['detail']}", issues=issues) from e

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude={"export_pipeline"})
        if self.export_pipeline is not None:
            data["exportPipeline"] = self.export_pipeline.to_dict()
        return data

    # -- derived views --------------------------------------------------------

    def bound_fields(self) -> List[Tuple[str, str]]:
        """Every (field, column letter) binding, in declaration order."""
        pairs = list(self.field_bindings.items())
        pairs += [(f, letter) for letter, f in self.column_bindings.items()
                  if (f, letter) not in pairs]
        return pairs

    def column_rules(self, width: int = 0) -> Dict[str, ColumnRule]:
        """
        Tagged rule per output column, ordered by column position.

        Columns up to `width` that have no binding get an EmptyColumnRule.
        """
        rules: Dict[str, ColumnRule] = {}
        for field_key, letter in self.bound_fields():
            rules.setdefault(letter, FieldColumnRule(column=letter, field=field_key))
        for letter, template in self.template_bindings.items():
            rules[letter] = TemplateColumnRule(column=letter, template=compile_template(template))

        if width:
            for idx in range(1, width + 1):
                letter = get_column_letter(idx)
                rules.setdefault(letter, EmptyColumnRule(column=letter))

        return dict(sorted(rules.items(), key=lambda item: column_index_from_string(item[0])))

    def fallback_for(self, field_key: str) -> Optional[TemplateExpression]:
        template = self.field_fallbacks.get(field_key)
        if template is None or not template.strip():
            return None
        return compile_template(template)

    @property
    def has_bindings(self) -> bool:
        """True when the rule set writes anything row-level."""
        return bool(
            self.field_bindings or self.column_bindings or self.header_bindings
            or any(t.strip() for t in self.template_bindings.values())
            or any(t.strip() for t in self.field_fallbacks.values())
        )

    @property
    def max_column_index(self) -> int:
        letters = [letter for _, letter in self.bound_fields()] + list(self.template_bindings)
        return max((column_index_from_string(letter) for letter in letters), default=0)
