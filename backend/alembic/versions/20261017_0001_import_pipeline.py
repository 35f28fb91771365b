"""import pipeline schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 00:00:01
"""

from collections.abc import Callable, Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _building_columns() -> list[sa.Column]:
    return [
        sa.Column("governorate_code", sa.String(length=8), nullable=True),
        sa.Column("district_code", sa.String(length=8), nullable=True),
        sa.Column("sub_district_code", sa.String(length=8), nullable=True),
        sa.Column("community_code", sa.String(length=8), nullable=True),
        sa.Column("neighborhood_code", sa.String(length=8), nullable=True),
        sa.Column("building_number", sa.String(length=16), nullable=True),
        sa.Column("building_code", sa.String(length=32), nullable=True),
        sa.Column("building_type", sa.Integer(), nullable=True),
        sa.Column("building_status", sa.Integer(), nullable=True),
        sa.Column("damage_level", sa.Integer(), nullable=True),
        sa.Column("number_of_property_units", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("number_of_apartments", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("number_of_shops", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("building_geometry_wkt", sa.Text(), nullable=True),
        sa.Column("address", sa.String(length=512), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    ]


def _property_unit_columns() -> list[sa.Column]:
    return [
        sa.Column("unit_identifier", sa.String(length=64), nullable=True),
        sa.Column("unit_type", sa.Integer(), nullable=True),
        sa.Column("unit_status", sa.Integer(), nullable=True),
        sa.Column("floor_number", sa.Integer(), nullable=True),
        sa.Column("area_square_meters", sa.Float(), nullable=True),
        sa.Column("number_of_rooms", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
    ]


def _person_columns() -> list[sa.Column]:
    return [
        sa.Column("first_name_arabic", sa.String(length=128), nullable=True),
        sa.Column("father_name_arabic", sa.String(length=128), nullable=True),
        sa.Column("family_name_arabic", sa.String(length=128), nullable=True),
        sa.Column("mother_name_arabic", sa.String(length=128), nullable=True),
        sa.Column("national_id", sa.String(length=32), nullable=True),
        sa.Column("year_of_birth", sa.Integer(), nullable=True),
        sa.Column("gender", sa.Integer(), nullable=True),
        sa.Column("mobile_number", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
    ]


def _household_columns() -> list[sa.Column]:
    counts = [
        "household_size",
        "male_count",
        "female_count",
        "male_child_count",
        "female_child_count",
        "male_elderly_count",
        "female_elderly_count",
        "male_disabled_count",
        "female_disabled_count",
    ]
    return [sa.Column("head_of_household_name", sa.String(length=255), nullable=True)] + [
        sa.Column(name, sa.Integer(), nullable=False, server_default=sa.text("0")) for name in counts
    ]


def _relation_columns() -> list[sa.Column]:
    return [
        sa.Column("relation_type", sa.Integer(), nullable=True),
        sa.Column("ownership_share", sa.Float(), nullable=True),
        sa.Column("contract_details", sa.Text(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
    ]


def _evidence_columns() -> list[sa.Column]:
    return [
        sa.Column("evidence_type", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("original_file_name", sa.String(length=512), nullable=True),
        sa.Column("file_path", sa.String(length=1024), nullable=True),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("file_hash", sa.String(length=64), nullable=True),
        sa.Column("mime_type", sa.String(length=128), nullable=True),
    ]


def _claim_columns() -> list[sa.Column]:
    return [
        sa.Column("claim_type", sa.Integer(), nullable=True),
        sa.Column("claim_source", sa.Integer(), nullable=True),
        sa.Column("claim_status", sa.Integer(), nullable=True),
        sa.Column("lifecycle_stage", sa.Integer(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=True),
        sa.Column("tenure_description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    ]


def _survey_columns() -> list[sa.Column]:
    return [
        sa.Column("survey_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("surveyed_by", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    ]


def _staging_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("import_package_id", sa.Integer(), nullable=False),
        sa.Column("original_entity_id", sa.String(length=64), nullable=False),
        sa.Column("validation_status", sa.String(length=16), nullable=False, server_default="Pending"),
        sa.Column("validation_errors", sa.JSON(), nullable=False),
        sa.Column("validation_warnings", sa.JSON(), nullable=False),
        sa.Column("mapping_issues", sa.JSON(), nullable=False),
        sa.Column("is_approved_for_commit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("committed_entity_id", sa.Integer(), nullable=True),
        sa.Column("merged_into_original_id", sa.String(length=64), nullable=True),
        sa.Column("skip_reason", sa.Text(), nullable=True),
        sa.Column("staged_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _production_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("source_package_id", sa.Integer(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("merged_into_id", sa.Integer(), nullable=True),
        *_timestamps(),
    ]


# (table, entity column factory, reference columns, indexed columns)
_STAGING_TABLES: list[tuple[str, Callable[[], list[sa.Column]], list[str], list[str]]] = [
    ("staging_buildings", _building_columns, [], ["building_code"]),
    ("staging_property_units", _property_unit_columns, ["building_id"], ["building_id"]),
    ("staging_persons", _person_columns, ["household_id"], ["family_name_arabic", "national_id"]),
    (
        "staging_households",
        _household_columns,
        ["property_unit_id", "head_of_household_person_id"],
        ["property_unit_id"],
    ),
    (
        "staging_person_property_relations",
        _relation_columns,
        ["person_id", "property_unit_id"],
        ["person_id", "property_unit_id"],
    ),
    (
        "staging_evidences",
        _evidence_columns,
        ["person_id", "person_property_relation_id", "claim_id"],
        ["person_property_relation_id", "file_hash"],
    ),
    ("staging_claims", _claim_columns, ["property_unit_id", "primary_claimant_id"], ["property_unit_id"]),
    ("staging_surveys", _survey_columns, ["building_id", "property_unit_id"], ["building_id"]),
]


def _production_table(name: str, columns: list[sa.Column], *constraints: sa.SchemaItem) -> None:
    op.create_table(
        name,
        *_production_columns(),
        *columns,
        sa.ForeignKeyConstraint(["source_package_id"], ["import_packages.id"], ondelete="SET NULL"),
        *constraints,
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(f"ix_{name}_source_package_id", name, ["source_package_id"], unique=False)


def upgrade() -> None:
    op.create_table(
        "import_packages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("package_id", sa.String(length=64), nullable=False),
        sa.Column("package_number", sa.String(length=32), nullable=False),
        sa.Column("file_name", sa.String(length=512), nullable=False),
        sa.Column("file_path", sa.String(length=1024), nullable=False),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("file_sha256", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("schema_version", sa.String(length=32), nullable=True),
        sa.Column("device_id", sa.String(length=128), nullable=True),
        sa.Column("exported_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("exported_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("manifest_checksum", sa.String(length=128), nullable=True),
        sa.Column("vocabulary_versions_json", sa.JSON(), nullable=False),
        sa.Column("manifest_warnings_json", sa.JSON(), nullable=False),
        sa.Column("imported_by", sa.String(length=64), nullable=True),
        sa.Column("record_counts_json", sa.JSON(), nullable=False),
        sa.Column("attachment_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("attachment_bytes", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("valid_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("invalid_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("warning_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("conflict_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("are_conflicts_resolved", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("committed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("committed_by", sa.String(length=64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("failed_stage", sa.String(length=32), nullable=True),
        sa.Column("archive_path", sa.String(length=1024), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("validation_summary_json", sa.JSON(), nullable=True),
        sa.Column("detection_summary_json", sa.JSON(), nullable=True),
        sa.Column("commit_report_json", sa.JSON(), nullable=True),
        sa.Column("staged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("package_number", name="uq_import_packages_package_number"),
    )
    op.create_index("ix_import_packages_package_id", "import_packages", ["package_id"], unique=True)
    op.create_index("ix_import_packages_status", "import_packages", ["status"], unique=False)

    op.create_table(
        "vocabularies",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("version", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("codes_json", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vocabularies_name", "vocabularies", ["name"], unique=False)

    op.create_table(
        "conflicts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("conflict_number", sa.String(length=40), nullable=False),
        sa.Column("conflict_type", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("first_entity_id", sa.String(length=64), nullable=False),
        sa.Column("second_entity_id", sa.String(length=64), nullable=False),
        sa.Column("first_entity_identifier", sa.String(length=512), nullable=True),
        sa.Column("second_entity_identifier", sa.String(length=512), nullable=True),
        sa.Column("import_package_id", sa.Integer(), nullable=True),
        sa.Column("similarity_score", sa.Float(), nullable=False),
        sa.Column("confidence_level", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("matching_criteria_json", sa.JSON(), nullable=False),
        sa.Column("is_auto_detected", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("resolution_action", sa.String(length=32), nullable=True),
        sa.Column("resolution_reason", sa.Text(), nullable=True),
        sa.Column("master_entity_id", sa.String(length=64), nullable=True),
        sa.Column("discarded_entity_id", sa.String(length=64), nullable=True),
        sa.Column("merge_mapping_json", sa.JSON(), nullable=True),
        sa.Column("resolved_by", sa.String(length=64), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_escalated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("escalation_reason", sa.Text(), nullable=True),
        sa.Column("escalated_by", sa.String(length=64), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["import_package_id"], ["import_packages.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("conflict_number", name="uq_conflicts_conflict_number"),
    )
    for column in ("entity_type", "first_entity_id", "second_entity_id", "import_package_id", "status"):
        op.create_index(f"ix_conflicts_{column}", "conflicts", [column], unique=False)

    for table_name, columns, references, indexed in _STAGING_TABLES:
        op.create_table(
            table_name,
            *_staging_columns(),
            *columns(),
            *[sa.Column(reference, sa.String(length=64), nullable=True) for reference in references],
            sa.ForeignKeyConstraint(["import_package_id"], ["import_packages.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "import_package_id",
                "original_entity_id",
                name=f"uq_{table_name}_package_original",
            ),
        )
        for column in ("import_package_id", "original_entity_id", "validation_status", *indexed):
            op.create_index(f"ix_{table_name}_{column}", table_name, [column], unique=False)

    _production_table("buildings", _building_columns())
    op.create_index("ix_buildings_building_code", "buildings", ["building_code"], unique=False)

    _production_table(
        "property_units",
        [*_property_unit_columns(), sa.Column("building_id", sa.Integer(), nullable=False)],
        sa.ForeignKeyConstraint(["building_id"], ["buildings.id"]),
    )
    op.create_index("ix_property_units_building_id", "property_units", ["building_id"], unique=False)

    _production_table(
        "households",
        [
            *_household_columns(),
            sa.Column("property_unit_id", sa.Integer(), nullable=False),
            sa.Column("head_of_household_person_id", sa.Integer(), nullable=True),
        ],
        sa.ForeignKeyConstraint(["property_unit_id"], ["property_units.id"]),
    )
    op.create_index("ix_households_property_unit_id", "households", ["property_unit_id"], unique=False)

    _production_table(
        "persons",
        [*_person_columns(), sa.Column("household_id", sa.Integer(), nullable=True)],
        sa.ForeignKeyConstraint(["household_id"], ["households.id"], name="fk_persons_household"),
    )
    op.create_index("ix_persons_family_name_arabic", "persons", ["family_name_arabic"], unique=False)
    op.create_index("ix_persons_national_id", "persons", ["national_id"], unique=False)
    op.create_foreign_key(
        "fk_households_head_person", "households", "persons", ["head_of_household_person_id"], ["id"]
    )

    _production_table(
        "person_property_relations",
        [
            *_relation_columns(),
            sa.Column("person_id", sa.Integer(), nullable=False),
            sa.Column("property_unit_id", sa.Integer(), nullable=False),
        ],
        sa.ForeignKeyConstraint(["person_id"], ["persons.id"]),
        sa.ForeignKeyConstraint(["property_unit_id"], ["property_units.id"]),
    )
    op.create_index(
        "ix_person_property_relations_person_id", "person_property_relations", ["person_id"], unique=False
    )
    op.create_index(
        "ix_person_property_relations_property_unit_id",
        "person_property_relations",
        ["property_unit_id"],
        unique=False,
    )

    op.create_table(
        "stored_files",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sha256", sa.String(length=64), nullable=False),
        sa.Column("storage_path", sa.String(length=1024), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("reference_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sha256", name="uq_stored_files_sha256"),
    )

    _production_table(
        "claims",
        [
            *_claim_columns(),
            sa.Column("claim_number", sa.String(length=32), nullable=True),
            sa.Column("property_unit_id", sa.Integer(), nullable=False),
            sa.Column("primary_claimant_id", sa.Integer(), nullable=True),
        ],
        sa.ForeignKeyConstraint(["property_unit_id"], ["property_units.id"]),
        sa.ForeignKeyConstraint(["primary_claimant_id"], ["persons.id"]),
        sa.UniqueConstraint("claim_number", name="uq_claims_claim_number"),
    )
    op.create_index("ix_claims_property_unit_id", "claims", ["property_unit_id"], unique=False)

    _production_table(
        "evidences",
        [
            *_evidence_columns(),
            sa.Column("stored_file_id", sa.Integer(), nullable=True),
            sa.Column("person_id", sa.Integer(), nullable=True),
            sa.Column("person_property_relation_id", sa.Integer(), nullable=True),
            sa.Column("claim_id", sa.Integer(), nullable=True),
        ],
        sa.ForeignKeyConstraint(["stored_file_id"], ["stored_files.id"]),
        sa.ForeignKeyConstraint(["person_id"], ["persons.id"]),
        sa.ForeignKeyConstraint(["person_property_relation_id"], ["person_property_relations.id"]),
        sa.ForeignKeyConstraint(["claim_id"], ["claims.id"]),
    )
    op.create_index("ix_evidences_file_hash", "evidences", ["file_hash"], unique=False)
    op.create_index(
        "ix_evidences_person_property_relation_id", "evidences", ["person_property_relation_id"], unique=False
    )

    _production_table(
        "surveys",
        [
            *_survey_columns(),
            sa.Column("building_id", sa.Integer(), nullable=False),
            sa.Column("property_unit_id", sa.Integer(), nullable=True),
        ],
        sa.ForeignKeyConstraint(["building_id"], ["buildings.id"]),
        sa.ForeignKeyConstraint(["property_unit_id"], ["property_units.id"]),
    )
    op.create_index("ix_surveys_building_id", "surveys", ["building_id"], unique=False)


def downgrade() -> None:
    for table_name in ("surveys", "evidences", "claims", "stored_files", "person_property_relations"):
        op.drop_table(table_name)
    op.drop_constraint("fk_households_head_person", "households", type_="foreignkey")
    for table_name in ("persons", "households", "property_units", "buildings"):
        op.drop_table(table_name)
    for table_name, _, _, _ in reversed(_STAGING_TABLES):
        op.drop_table(table_name)
    op.drop_table("conflicts")
    op.drop_table("vocabularies")
    op.drop_table("import_packages")
