"""
Unit tests for the individual migration phases.

Most phase behaviour is exercised end to end in test_pipeline.py; these
tests run single phases against small, targeted data sets.
"""

from unittest.mock import MagicMock

import pytest

from eavmigrate.config import EavMigrationSettings, FieldRules, MappedDocument
from eavmigrate.eav.entity_types import EntityTypeTranslator
from eavmigrate.eav.id_maps import IdCorrespondenceMap, IdMaps
from eavmigrate.eav.phases import AttributeSetPhase, MappedDocumentPhase, PhaseContext
from eavmigrate.eav.snapshot import InitialData
from eavmigrate.exceptions import NaturalKeyResolutionError
from eavmigrate.metrics import EavMigrationMetrics
from eavmigrate.observability import NullTracer
from eavmigrate.records import Relation
from eavmigrate.transform import FieldRuleTransformerFactory
from tests.fixtures import (
    DEST_RELATIONS,
    SOURCE_RELATIONS,
    make_destination_store,
    make_source_store,
    make_store,
)

PRODUCT_TYPE = [{"entity_type_id": 4, "entity_type_code": "catalog_product"}]


async def build_context(source, destination, settings, transformers=None, advance=None):
    initial_data = InitialData(source, destination, settings)
    await initial_data.load()
    return PhaseContext(
        source=source,
        destination=destination,
        settings=settings,
        initial_data=initial_data,
        translator=EntityTypeTranslator(initial_data),
        transformers=transformers or FieldRuleTransformerFactory(settings),
        metrics=EavMigrationMetrics(enable_metrics=False),
        tracer=NullTracer(),
        advance=advance or (lambda name: None),
    )


def single_set_stores():
    source = make_store(
        SOURCE_RELATIONS,
        {
            "eav_entity_type": PRODUCT_TYPE,
            "eav_attribute_set": [
                {"attribute_set_id": 5, "entity_type_id": 4, "attribute_set_name": "Default", "sort_order": 1}
            ],
        },
    )
    destination = make_store(
        DEST_RELATIONS,
        {
            "eav_entity_type": PRODUCT_TYPE,
            "eav_attribute_set": [
                {"attribute_set_id": 9, "entity_type_id": 4, "attribute_set_name": "Default", "sort_order": 99}
            ],
        },
    )
    return source, destination


class TestAttributeSetPhase:
    """Tests for AttributeSetPhase."""

    @pytest.mark.asyncio
    async def test_matching_set_is_replaced_by_source_set(self):
        """A destination set with the source set's natural key maps onto the source id."""
        source, destination = single_set_stores()
        context = await build_context(source, destination, EavMigrationSettings())

        result = await AttributeSetPhase(context).run()

        assert destination.rows("eav_attribute_set") == [
            {"attribute_set_id": 5, "entity_type_id": 4, "attribute_set_name": "Default", "sort_order": 1}
        ]
        assert result.attribute_sets.get(9) == 5
        assert result.product_set_ids == (5,)

    @pytest.mark.asyncio
    async def test_supplemental_groups_for_product_sets(self):
        """Every product set receives the configured supplemental groups."""
        source, destination = single_set_stores()
        context = await build_context(source, destination, EavMigrationSettings())

        result = await AttributeSetPhase(context).run()

        names = [
            (group["attribute_set_id"], group["attribute_group_name"])
            for group in result.supplemental_groups
        ]
        assert names == [(5, "Schedule Design Update"), (5, "Bundle Items")]
        assert all(group["attribute_group_id"] is not None for group in result.supplemental_groups)
        assert len(destination.rows("eav_attribute_group")) == 2

    @pytest.mark.asyncio
    async def test_diverging_natural_key_raises(self):
        """A transform changing a natural key breaks the id map rebuild."""
        source, destination = single_set_stores()
        settings = EavMigrationSettings(
            field_rules={"eav_attribute_set": FieldRules(values={"attribute_set_name": "Renamed"})}
        )
        context = await build_context(source, destination, settings)

        with pytest.raises(NaturalKeyResolutionError) as exc_info:
            await AttributeSetPhase(context).run()

        assert exc_info.value.key == (4, "Default")
        assert exc_info.value.old_id == 9

    @pytest.mark.asyncio
    async def test_advances_once_per_relation(self):
        source, destination = single_set_stores()
        advance = MagicMock()
        context = await build_context(source, destination, EavMigrationSettings(), advance=advance)

        await AttributeSetPhase(context).run()

        assert [call.args[0] for call in advance.call_args_list] == [
            "eav_attribute_set",
            "eav_attribute_group",
        ]

    @pytest.mark.asyncio
    async def test_advances_after_saving(self):
        """The progress callback sees each relation already replaced."""
        source, destination = single_set_stores()
        saved: list[bool] = []
        context = await build_context(
            source,
            destination,
            EavMigrationSettings(),
            advance=lambda name: saved.append(destination.has_backup(name)),
        )

        await AttributeSetPhase(context).run()

        assert saved == [True, True]

    @pytest.mark.asyncio
    async def test_supplemental_group_keeps_source_group_id(self):
        """A source group replaced by a supplemental group lends it its id."""
        source, destination = single_set_stores()
        await source.save("eav_attribute_group", [
            {
                "attribute_group_id": 12,
                "attribute_set_id": 5,
                "attribute_group_name": "Bundle Items",
                "sort_order": 3,
                "default_id": 0,
            }
        ])
        context = await build_context(source, destination, EavMigrationSettings())

        result = await AttributeSetPhase(context).run()

        ids = {
            group["attribute_group_name"]: group["attribute_group_id"]
            for group in result.supplemental_groups
        }
        assert ids["Bundle Items"] == 12
        assert ids["Schedule Design Update"] == 13
        bundle = [
            row for row in destination.rows("eav_attribute_group")
            if row["attribute_group_name"] == "Bundle Items"
        ]
        assert len(bundle) == 1
        assert bundle[0]["attribute_group_code"] == "bundle-items"
        assert bundle[0]["sort_order"] == 16


LABELS = Relation("eav_attribute_label", ("attribute_id", "store_id", "value"))


class TestMappedDocumentPhase:
    """Tests for MappedDocumentPhase on a relation without a primary key."""

    @pytest.mark.asyncio
    async def test_merges_by_resolved_attribute_key(self):
        """Source rows merge onto destination rows of the same attribute and store."""
        source = make_source_store()
        source.add_relation(LABELS, [{"attribute_id": 71, "store_id": 0, "value": "Product Name"}])
        destination = make_destination_store()
        destination.add_relation(
            LABELS,
            [
                {"attribute_id": 73, "store_id": 0, "value": "Name"},
                {"attribute_id": 95, "store_id": 0, "value": "Qty"},
                {"attribute_id": None, "store_id": 1, "value": "Detached"},
            ],
        )
        settings = EavMigrationSettings(
            documents=(
                "eav_attribute_set",
                "eav_attribute_group",
                "eav_attribute",
                "eav_entity_attribute",
                "eav_attribute_label",
            ),
            mapped_documents=(
                MappedDocument(relation="eav_attribute_label", key_fields=("attribute_id", "store_id")),
            ),
        )
        context = await build_context(source, destination, settings)
        id_maps = IdMaps(
            attribute_sets=IdCorrespondenceMap.empty("eav_attribute_set"),
            attribute_groups=IdCorrespondenceMap.empty("eav_attribute_group"),
            attributes=IdCorrespondenceMap.build("eav_attribute", [(73, 71), (95, 82)]),
        )

        result = await MappedDocumentPhase(context).run(id_maps)

        assert result.saved == {"eav_attribute_label": 3}
        assert destination.rows("eav_attribute_label") == [
            {"attribute_id": 71, "store_id": 0, "value": "Product Name"},
            {"attribute_id": 82, "store_id": 0, "value": "Qty"},
            {"attribute_id": None, "store_id": 1, "value": "Detached"},
        ]
        assert destination.has_backup("eav_attribute_label")

    @pytest.mark.asyncio
    async def test_skips_rows_of_ignored_attributes(self):
        """Source rows of an ignored attribute are dropped, not saved."""
        source = make_source_store()
        source.add_relation(
            LABELS,
            [
                {"attribute_id": 71, "store_id": 0, "value": "Product Name"},
                {"attribute_id": 90, "store_id": 0, "value": "Old Flag"},
            ],
        )
        destination = make_destination_store()
        destination.add_relation(LABELS, [])
        settings = EavMigrationSettings(
            documents=(
                "eav_attribute_set",
                "eav_attribute_group",
                "eav_attribute",
                "eav_entity_attribute",
                "eav_attribute_label",
            ),
            mapped_documents=(
                MappedDocument(relation="eav_attribute_label", key_fields=("attribute_id", "store_id")),
            ),
        )
        advance = MagicMock()
        context = await build_context(source, destination, settings, advance=advance)
        id_maps = IdMaps(
            attribute_sets=IdCorrespondenceMap.empty("eav_attribute_set"),
            attribute_groups=IdCorrespondenceMap.empty("eav_attribute_group"),
            attributes=IdCorrespondenceMap.empty("eav_attribute"),
        )

        result = await MappedDocumentPhase(context).run(id_maps, frozenset({90}))

        assert result.saved == {"eav_attribute_label": 1}
        assert result.dropped == {"eav_attribute_label": 1}
        assert destination.rows("eav_attribute_label") == [
            {"attribute_id": 71, "store_id": 0, "value": "Product Name"}
        ]
        assert context.metrics.get_snapshot().orphans_dropped == 1
        advance.assert_called_once_with("eav_attribute_label")
