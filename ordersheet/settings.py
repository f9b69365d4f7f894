"""
Engine settings - the explicit configuration object threaded into every operation.

Holds the synonym list, exclusion patterns, duplicate-check settings, courier
mappings, the invoice template and the required-field set. Loaded from a JSON
file (see SystemConfig.settings_path); a missing file yields the defaults.
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as SchemaError

from ordersheet.blueprint.fields import CanonicalFields, DEFAULT_SYNONYMS
from ordersheet.blueprint.synonyms import SynonymDictionary, SynonymEntry
from ordersheet.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_PERIOD_DAYS = (10, 15, 20, 30)


class SynonymSetting(BaseModel):
    standard_key: str = Field(..., alias="standardKey")
    synonym: str
    enabled: bool = True

    class Config:
        populate_by_name = True


class ExclusionPattern(BaseModel):
    pattern: str = Field(..., min_length=1)
    description: str = ""
    enabled: bool = True
    is_regex: bool = Field(False, alias="isRegex")

    class Config:
        populate_by_name = True


class DuplicateCheckSettings(BaseModel):
    enabled: bool = True
    period_days: int = Field(10, alias="periodDays")

    class Config:
        populate_by_name = True

    @field_validator("period_days")
    @classmethod
    def _check_period(cls, value: int) -> int:
        if value not in ALLOWED_PERIOD_DAYS:
            raise ValueError(f"periodDays must be one of {ALLOWED_PERIOD_DAYS}, got {value}")
        return value


class CourierMapping(BaseModel):
    name: str
    code: str
    aliases: List[str] = Field(default_factory=list)
    enabled: bool = True


class InvoiceTemplate(BaseModel):
    """Where the courier's invoice file keeps order number, courier and tracking number."""
    order_number_column: str = Field(..., alias="orderNumberColumn")
    courier_column: str = Field(..., alias="courierColumn")
    tracking_number_column: str = Field(..., alias="trackingNumberColumn")
    header_row: int = Field(1, ge=1, alias="headerRow")
    data_start_row: int = Field(2, ge=2, alias="dataStartRow")
    # True: columns are letters/indices; False: columns are header texts
    use_column_index: bool = Field(True, alias="useColumnIndex")

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def _check_columns(self) -> "InvoiceTemplate":
        if self.data_start_row <= self.header_row:
            raise ValueError("dataStartRow must be below headerRow")
        for name in ("order_number_column", "courier_column", "tracking_number_column"):
            value = (getattr(self, name) or "").strip()
            if not value:
                raise ValueError(f"{name} must not be empty")
            if self.use_column_index:
                value = value.upper()
                if not value.isalpha() or not value.isascii():
                    raise ValueError(f"{name} must be a column letter like A, B, C (got '{value}')")
            setattr(self, name, value)
        return self


def _default_synonyms() -> List[SynonymSetting]:
    return [
        SynonymSetting(standard_key=key, synonym=syn)
        for key, synonyms in DEFAULT_SYNONYMS.items()
        for syn in synonyms
    ]


class EngineSettings(BaseModel):
    synonyms: List[SynonymSetting] = Field(default_factory=_default_synonyms)
    exclusion_enabled: bool = Field(True, alias="exclusionEnabled")
    exclusion_patterns: List[ExclusionPattern] = Field(default_factory=list, alias="exclusionPatterns")
    duplicate_check: DuplicateCheckSettings = Field(default_factory=DuplicateCheckSettings, alias="duplicateCheck")
    couriers: List[CourierMapping] = Field(default_factory=list)
    invoice_template: Optional[InvoiceTemplate] = Field(None, alias="invoiceTemplate")
    required_fields: List[str] = Field(default_factory=CanonicalFields.required_keys, alias="requiredFields")
    email_subject_template: Optional[str] = Field(None, alias="emailSubjectTemplate")
    sender_name: str = Field("", alias="senderName")

    class Config:
        populate_by_name = True

    @classmethod
    def load(cls, path: Path) -> "EngineSettings":
        path = Path(path)
        if not path.exists():
            logger.info(f"No settings file at {path}; using defaults")
            return cls()

        logger.debug(f"Loading engine settings from: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        try:
            return cls.model_validate(data)
        except SchemaError as e:
            issues = [
                {"issue": ".".join(str(p) for p in err.get("loc", ())), "detail": err.get("msg", ""),
                 "fix": f"Correct the value in {path.name}"}
                for err in e.errors()
            ]
            logger.error(f"Invalid settings file {path}: {len(issues)} issue(s)")
            raise ValidationError(f"Invalid settings file {path}", issues=issues) from e

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(by_alias=True), f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
        logger.info(f"Saved engine settings -> {path}")

    def synonym_dictionary(self) -> SynonymDictionary:
        return SynonymDictionary(
            SynonymEntry(standard_key=s.standard_key, synonym=s.synonym, enabled=s.enabled)
            for s in self.synonyms
        )
