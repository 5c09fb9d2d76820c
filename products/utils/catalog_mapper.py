from typing import Any, Dict, Iterator, List, Optional, Tuple

CatalogObject = Dict[str, Any]
ProductRecord = Dict[str, Any]

UNNAMED = "Unnamed"


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _variation_name(item_name: str, variation_name: str) -> str:
    if not variation_name or variation_name.lower() == item_name.lower():
        return item_name
    return f"{item_name} - {variation_name}"


def _variations_for_item(
    item: CatalogObject, related_variations: Dict[str, CatalogObject]
) -> List[CatalogObject]:
    variations: List[CatalogObject] = []
    for entry in (item.get("item_data") or {}).get("variations") or []:
        if entry.get("item_variation_data"):
            variations.append(entry)
            continue
        # Reference only; resolve the full object from related_objects.
        resolved = related_variations.get(entry.get("id"))
        if resolved is not None:
            variations.append(resolved)
    return variations


def _price_cents(amount: Any) -> Optional[int]:
    if amount is None:
        return None
    if isinstance(amount, bool) or not isinstance(amount, (int, str)):
        raise ValueError(f"invalid price amount {amount!r}")
    return int(amount)


def iter_item_variations(
    objects: List[CatalogObject], related_objects: Optional[List[CatalogObject]] = None
) -> Iterator[Tuple[CatalogObject, Optional[CatalogObject]]]:
    """Yield ``(item, variation)`` pairs; ``variation`` is None for a bare item."""
    related_variations = {
        obj["id"]: obj
        for obj in related_objects or []
        if obj.get("type") == "ITEM_VARIATION" and obj.get("id")
    }

    for item in objects:
        if item.get("type") != "ITEM" or item.get("is_deleted") or not item.get("id"):
            continue

        variations = [
            variation
            for variation in _variations_for_item(item, related_variations)
            if not variation.get("is_deleted")
        ]
        if not variations:
            yield item, None
            continue
        for variation in variations:
            yield item, variation


def build_product_record(item: CatalogObject, variation: Optional[CatalogObject]) -> ProductRecord:
    """Map one item/variation pair to a local product record.

    Raises ValueError when the upstream price is not an integer amount.
    """
    item_data = item.get("item_data") or {}
    item_name = _clean(item_data.get("name")) or UNNAMED
    item_sku = _clean(item_data.get("sku"))
    item_upc = _clean(item_data.get("upc"))

    if variation is None:
        return {
            "pos_item_id": item["id"],
            "pos_variation_id": "",
            "name": item_name,
            "sku": item_sku,
            "upc": item_upc,
            "retail_price_cents": None,
        }

    data = variation.get("item_variation_data") or {}
    return {
        "pos_item_id": item["id"],
        "pos_variation_id": variation.get("id") or "",
        "name": _variation_name(item_name, _clean(data.get("name"))),
        "sku": _clean(data.get("sku")) or item_sku,
        "upc": _clean(data.get("upc")) or item_upc,
        "retail_price_cents": _price_cents((data.get("price_money") or {}).get("amount")),
    }


def iter_product_records(
    objects: List[CatalogObject], related_objects: Optional[List[CatalogObject]] = None
) -> Iterator[ProductRecord]:
    """Yield one product record per item variation (or per bare item)."""
    for item, variation in iter_item_variations(objects, related_objects):
        yield build_product_record(item, variation)
