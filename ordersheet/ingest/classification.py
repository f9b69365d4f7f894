"""
Order Classification Engine - decides which manufacturer supplies an order line.

Lookup order:
1. product code -> manufacturer
2. (product code or product name, normalized option name) -> manufacturer
3. manufacturer name carried in the source file, matched case-insensitively
4. unclassified (None)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ordersheet.models import CanonicalOrderRecord, Manufacturer, OptionMapping, ProductMapping
from ordersheet.utils.snitch import snitch
from ordersheet.utils.text import normalize_manufacturer_name, normalize_option_name, normalize_whitespace

logger = logging.getLogger(__name__)

SOURCE_PRODUCT = "product"
SOURCE_OPTION = "option"
SOURCE_MANUFACTURER_NAME = "manufacturer_name"


@dataclass
class ClassificationResult:
    updated: List[str] = field(default_factory=list)       # order numbers
    unchanged: List[str] = field(default_factory=list)
    unclassified: List[str] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {"updated": len(self.updated), "unchanged": len(self.unchanged),
                "unclassified": len(self.unclassified)}


class OrderClassificationEngine:

    def __init__(self, product_mappings: Iterable[ProductMapping] = (),
                 option_mappings: Iterable[OptionMapping] = (),
                 manufacturers: Iterable[Manufacturer] = ()):
        self._products: Dict[str, str] = {}
        self._options: Dict[Tuple[str, str], str] = {}
        self._manufacturers: Dict[str, Manufacturer] = {}
        self._by_name: Dict[str, str] = {}

        for mapping in product_mappings:
            self.add_product_mapping(mapping)
        for mapping in option_mappings:
            self.add_option_mapping(mapping)
        for manufacturer in manufacturers:
            self.add_manufacturer(manufacturer)

    def add_product_mapping(self, mapping: ProductMapping) -> None:
        code = mapping.product_code.strip()
        if code:
            self._products[code] = str(mapping.manufacturer_id)

    def add_option_mapping(self, mapping: OptionMapping) -> None:
        key = (normalize_whitespace(mapping.product_key), normalize_option_name(mapping.option_name))
        if key[0] and key[1]:
            self._options[key] = str(mapping.manufacturer_id)

    def add_manufacturer(self, manufacturer: Manufacturer) -> None:
        self._manufacturers[str(manufacturer.id)] = manufacturer
        name = normalize_manufacturer_name(manufacturer.name)
        if name:
            self._by_name[name.lower()] = str(manufacturer.id)

    def manufacturer(self, manufacturer_id: str) -> Optional[Manufacturer]:
        return self._manufacturers.get(str(manufacturer_id))

    def classify_with_source(self, record: CanonicalOrderRecord) -> Tuple[Optional[str], Optional[str]]:
        code = (record.product_code or "").strip()
        if code and code in self._products:
            return self._products[code], SOURCE_PRODUCT

        option = normalize_option_name(record.option_name)
        if option:
            for product_key in (code, normalize_whitespace(record.product_name or "")):
                if product_key and (product_key, option) in self._options:
                    return self._options[(product_key, option)], SOURCE_OPTION

        name = normalize_manufacturer_name(record.manufacturer_name or "")
        if name and name.lower() in self._by_name:
            return self._by_name[name.lower()], SOURCE_MANUFACTURER_NAME

        return None, None

    def classify(self, record: CanonicalOrderRecord) -> Optional[str]:
        return self.classify_with_source(record)[0]

    @snitch
    def reclassify(self, records: Iterable[CanonicalOrderRecord], force: bool = False) -> ClassificationResult:
        """
        Attach manufacturer ids to records in place.

        Already-classified records are left alone unless `force` is set; a forced
        run that finds no match keeps the existing id.
        """
        result = ClassificationResult()
        for record in records:
            if record.manufacturer_id and not force:
                result.unchanged.append(record.order_number)
                continue

            manufacturer_id = self.classify(record)
            if manufacturer_id is None:
                if record.manufacturer_id:
                    result.unchanged.append(record.order_number)
                else:
                    result.unclassified.append(record.order_number)
                continue

            if manufacturer_id == record.manufacturer_id:
                result.unchanged.append(record.order_number)
                continue

            record.manufacturer_id = manufacturer_id
            known = self._manufacturers.get(manufacturer_id)
            if known is not None:
                record.manufacturer_name = known.name
            result.updated.append(record.order_number)

        logger.info(f"Reclassified orders: {result.summary()} (force={force})")
        return result
