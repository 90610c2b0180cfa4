"""
Structural patches applied to staged EAV rows.

The destination schema generation reorganises a few product attributes and
groups. These patches reproduce that reorganisation on the migrated data.
Each patch is a pure function: it takes the staged records plus read-only
lookup indexes and returns a new list, leaving its input untouched. The
assignment phase applies them in a fixed order after its generic work:

    1. apply_design_attributes
    2. move_attribute_to_group("price", "product-details")
    3. move_attribute_to_group("shipment_type", "bundle-items")
    4. add_attribute_to_group("quantity_and_stock_status", "product-details")

add_supplemental_groups runs earlier, while attribute groups are staged.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from eavmigrate.config import SupplementalGroup
from eavmigrate.records import Record, Relation

logger = logging.getLogger(__name__)

CUSTOM_DESIGN = "custom_design"
CUSTOM_LAYOUT = "custom_layout"
CUSTOM_DESIGN_SORT_ORDER = 40
CUSTOM_LAYOUT_SORT_ORDER = 50

PRODUCT_DETAILS = "product-details"
BUNDLE_ITEMS = "bundle-items"

ATTRIBUTE_MOVES: tuple[tuple[str, str], ...] = (
    ("price", PRODUCT_DETAILS),
    ("shipment_type", BUNDLE_ITEMS),
)
ATTRIBUTE_ADDITIONS: tuple[tuple[str, str], ...] = (
    ("quantity_and_stock_status", PRODUCT_DETAILS),
)


@dataclass(frozen=True)
class GroupIndex:
    """
    Attribute group ids by (attribute_set_id, attribute_group_code).

    Groups without a code are not indexed.
    """

    groups: Mapping[tuple[int, str], int] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_records(cls, records: Iterable[Record]) -> GroupIndex:
        groups: dict[tuple[int, str], int] = {}
        for record in records:
            code = record["attribute_group_code"]
            if code is None:
                continue
            groups.setdefault((record["attribute_set_id"], code), record["attribute_group_id"])
        return cls(groups=MappingProxyType(groups))

    def group_id(self, attribute_set_id: int, group_code: str) -> int | None:
        return self.groups.get((attribute_set_id, group_code))

    def sets_with(self, group_code: str) -> tuple[int, ...]:
        """Attribute sets that own a group with ``group_code``, in index order."""
        return tuple(set_id for set_id, code in self.groups if code == group_code)


@dataclass(frozen=True)
class DesignAttributes:
    """
    Ids the design patch works with.

    Attributes:
        custom_design_id: Result id of the product "custom_design" attribute
        custom_layout_id: Result id of the product "custom_layout" attribute
        product_entity_type_id: Product entity type id in result numbering
        product_entity_type_dest_id: Product entity type id in the
            pre-migration destination
    """

    custom_design_id: int | None
    custom_layout_id: int | None
    product_entity_type_id: int | None
    product_entity_type_dest_id: int | None = None

    @classmethod
    def resolve(
        cls,
        attributes: Iterable[Record],
        product_entity_type_id: int | None,
        product_entity_type_dest_id: int | None = None,
    ) -> DesignAttributes:
        """Find the design attributes among saved attribute records."""
        ids: dict[str, int] = {}
        if product_entity_type_id is not None:
            for record in attributes:
                if record["entity_type_id"] != product_entity_type_id:
                    continue
                if record["attribute_code"] in (CUSTOM_DESIGN, CUSTOM_LAYOUT):
                    ids[record["attribute_code"]] = record["attribute_id"]
        return cls(
            custom_design_id=ids.get(CUSTOM_DESIGN),
            custom_layout_id=ids.get(CUSTOM_LAYOUT),
            product_entity_type_id=product_entity_type_id,
            product_entity_type_dest_id=product_entity_type_dest_id,
        )


def add_supplemental_groups(
    records: Sequence[Record],
    attribute_set_ids: Iterable[int],
    definitions: Iterable[SupplementalGroup],
    relation: Relation,
) -> tuple[list[Record], list[Record]]:
    """
    Add every supplemental group to every given attribute set.

    A supplemental group replaces a staged group with the same
    (attribute_set_id, attribute_group_name). When the replaced group came
    from the source it keeps that group's primary key, so source rows that
    reference it still resolve.

    Returns:
        Tuple of (all staged records, the supplemental records added)
    """
    key_fields = ("attribute_set_id", "attribute_group_name")
    staged_by_key = {record.key(key_fields): record for record in records}
    set_ids = list(dict.fromkeys(attribute_set_ids))
    added: list[Record] = []
    for definition in definitions:
        for set_id in set_ids:
            group = Record(relation)
            group.update(
                {
                    "attribute_set_id": set_id,
                    "attribute_group_name": definition.attribute_group_name,
                    "attribute_group_code": definition.attribute_group_code,
                    "sort_order": definition.sort_order,
                    "default_id": definition.default_id,
                    "tab_group_code": definition.tab_group_code,
                }
            )
            previous = staged_by_key.get(group.key(key_fields))
            if previous is not None and previous.primary_key_value is not None:
                group[relation.primary_key] = previous.primary_key_value
            added.append(group)

    replaced = {record.key(key_fields) for record in added}
    kept = [record for record in records if record.key(key_fields) not in replaced]
    if len(kept) != len(records):
        logger.debug("Supplemental groups replaced %d staged groups", len(records) - len(kept))
    return kept + added, added


def apply_design_attributes(
    records: Sequence[Record],
    design: DesignAttributes,
    schedule_groups: Iterable[Record],
    product_set_ids: Iterable[int],
    relation: Relation,
) -> list[Record]:
    """
    Bind the design attributes to the new "Schedule Design Update" groups.

    Drops every assignment of "custom_design" to a product attribute set,
    then gives each schedule group one "custom_design" (sort order 40) and
    one "custom_layout" (sort order 50) assignment. A "custom_layout"
    assignment already present in a set receiving a new one is dropped so
    the set keeps a single binding. Missing attributes are skipped.
    """
    schedule_groups = list(schedule_groups)
    product_sets = set(product_set_ids)
    layout_sets = (
        {group["attribute_set_id"] for group in schedule_groups}
        if design.custom_layout_id is not None
        else set()
    )

    patched: list[Record] = []
    for record in records:
        attribute_id = record["attribute_id"]
        set_id = record["attribute_set_id"]
        if design.custom_design_id is not None and attribute_id == design.custom_design_id:
            if set_id in product_sets:
                continue
        if design.custom_layout_id is not None and attribute_id == design.custom_layout_id:
            if set_id in layout_sets:
                continue
        patched.append(record)

    bindings = (
        (design.custom_design_id, CUSTOM_DESIGN_SORT_ORDER),
        (design.custom_layout_id, CUSTOM_LAYOUT_SORT_ORDER),
    )
    for group in schedule_groups:
        for attribute_id, sort_order in bindings:
            if attribute_id is None:
                continue
            patched.append(
                Record(
                    relation,
                    {
                        "entity_type_id": design.product_entity_type_id,
                        "attribute_set_id": group["attribute_set_id"],
                        "attribute_group_id": group["attribute_group_id"],
                        "attribute_id": attribute_id,
                        "sort_order": sort_order,
                    },
                )
            )
    return patched


def move_attribute_to_group(
    records: Sequence[Record],
    attribute_code: str,
    group_code: str,
    *,
    attribute_codes: Mapping[int, str],
    groups: GroupIndex,
) -> list[Record]:
    """
    Rebind ``attribute_code`` to the ``group_code`` group of its set.

    Sets without such a group keep the assignment where it is.
    """
    moved: list[Record] = []
    count = 0
    for record in records:
        if attribute_codes.get(record["attribute_id"]) == attribute_code:
            group_id = groups.group_id(record["attribute_set_id"], group_code)
            if group_id is not None and group_id != record["attribute_group_id"]:
                record = record.copy()
                record["attribute_group_id"] = group_id
                count += 1
        moved.append(record)
    logger.debug("Moved %d '%s' assignments to group '%s'", count, attribute_code, group_code)
    return moved


def add_attribute_to_group(
    records: Sequence[Record],
    attribute_code: str,
    group_code: str,
    *,
    attribute_codes: Mapping[int, str],
    groups: GroupIndex,
) -> list[Record]:
    """
    Assign ``attribute_code`` to every set owning a ``group_code`` group.

    New assignments are clones of an existing assignment of the attribute,
    rebound to the set and group with the primary key cleared. Sets already
    assigning the attribute are left alone, so applying the patch twice adds
    nothing the second time. Without an assignment to clone, nothing is added.
    """
    template: Record | None = None
    assigned: set[int] = set()
    for record in records:
        if attribute_codes.get(record["attribute_id"]) == attribute_code:
            assigned.add(record["attribute_set_id"])
            template = record

    result = list(records)
    if template is None:
        return result

    for set_id in groups.sets_with(group_code):
        if set_id in assigned:
            continue
        clone = template.copy()
        clone["attribute_set_id"] = set_id
        clone["attribute_group_id"] = groups.group_id(set_id, group_code)
        clone.clear_primary_key()
        result.append(clone)
    logger.debug(
        "Added '%s' to %d attribute sets",
        attribute_code,
        len(result) - len(records),
    )
    return result


__all__ = [
    "CUSTOM_DESIGN",
    "CUSTOM_LAYOUT",
    "CUSTOM_DESIGN_SORT_ORDER",
    "CUSTOM_LAYOUT_SORT_ORDER",
    "PRODUCT_DETAILS",
    "BUNDLE_ITEMS",
    "ATTRIBUTE_MOVES",
    "ATTRIBUTE_ADDITIONS",
    "GroupIndex",
    "DesignAttributes",
    "add_supplemental_groups",
    "apply_design_attributes",
    "move_attribute_to_group",
    "add_attribute_to_group",
]
