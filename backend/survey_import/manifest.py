"""Manifest parsing, content checksums and vocabulary compatibility."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from survey_import.container import Container
from survey_import.errors import ContainerFormatError

logger = logging.getLogger(__name__)

_CHECKSUM_EXCLUDED_TABLES = frozenset({"manifest", "attachments"})
_NULL_MARKER = "\\0"
_VERSION_RE = re.compile(r"^\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")

CompatibilityLevel = Literal["identical", "patch", "minor", "major", "unknown_domain"]


@dataclass(slots=True)
class PackageManifest:
    """Metadata carried in the container's ``manifest`` key/value table."""

    package_id: str
    schema_version: str = "1.0.0"
    form_schema_version: str = "1.0.0"
    created_utc: datetime | None = None
    exported_date_utc: datetime | None = None
    device_id: str | None = None
    app_version: str | None = None
    exported_by_user_id: str | None = None
    checksum: str | None = None
    vocab_versions: dict[str, str] = field(default_factory=dict)
    declared_counts: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class VocabularyCheckItem:
    domain: str
    package_version: str
    server_version: str | None
    level: CompatibilityLevel
    message: str | None = None


@dataclass(slots=True)
class VocabularyCompatibility:
    """Outcome of comparing package vocabulary versions with the server's."""

    items: list[VocabularyCheckItem] = field(default_factory=list)

    @property
    def is_compatible(self) -> bool:
        return all(item.level != "major" for item in self.items)

    @property
    def warnings(self) -> list[str]:
        return [item.message for item in self.items if item.message and item.level != "major"]

    @property
    def errors(self) -> list[str]:
        return [item.message for item in self.items if item.message and item.level == "major"]


def read_manifest(container: Container) -> PackageManifest:
    """Parse the manifest table; ``package_id`` is mandatory."""

    if not container.has_table("manifest"):
        raise ContainerFormatError("Invalid package: manifest table not found")
    values: dict[str, str] = {}
    for row in container.iter_rows("manifest"):
        key = row.get("key")
        if key is None:
            raise ContainerFormatError("Invalid package: manifest rows need key and value columns")
        values[str(key).strip().lower()] = "" if row.get("value") is None else str(row["value"])

    package_id = values.get("package_id", "").strip()
    if not package_id:
        raise ContainerFormatError("Invalid package: manifest has no package_id")

    vocab_versions: dict[str, str] = {}
    raw_vocab = values.get("vocab_versions")
    if raw_vocab:
        try:
            parsed = json.loads(raw_vocab)
            vocab_versions = {str(key): str(value) for key, value in parsed.items()}
        except (ValueError, AttributeError):
            logger.warning("manifest.invalid_vocab_versions package_id=%s raw=%r", package_id, raw_vocab)

    declared_counts: dict[str, int] = {}
    for key, value in values.items():
        if key.endswith("_count"):
            try:
                declared_counts[key] = int(value)
            except ValueError:
                continue

    return PackageManifest(
        package_id=package_id,
        schema_version=values.get("schema_version") or "1.0.0",
        form_schema_version=values.get("form_schema_version") or "1.0.0",
        created_utc=_parse_datetime(values.get("created_utc")),
        exported_date_utc=_parse_datetime(values.get("exported_date_utc")),
        device_id=values.get("device_id") or None,
        app_version=values.get("app_version") or None,
        exported_by_user_id=values.get("exported_by_user_id") or None,
        checksum=values.get("checksum") or None,
        vocab_versions=vocab_versions,
        declared_counts=declared_counts,
    )


def compute_content_checksum(container: Container) -> str:
    """SHA-256 over every data table in a canonical, column-sorted text form."""

    digest = hashlib.sha256()
    for table in container.tables:
        if table.startswith("sqlite_") or table in _CHECKSUM_EXCLUDED_TABLES:
            continue
        digest.update(f"TABLE:{table}\n".encode("utf-8"))
        columns = sorted(container.columns(table))
        for row in container.iter_rows(table):
            parts = [f"{column}={_canonical_value(row.get(column))}" for column in columns]
            digest.update(("\t".join(parts) + "\n").encode("utf-8"))
    return digest.hexdigest()


def verify_content_checksum(container: Container, manifest: PackageManifest) -> str:
    """Compute the content checksum and compare it with the manifest's, when present."""

    computed = compute_content_checksum(container)
    if manifest.checksum and manifest.checksum.strip().lower() != computed:
        raise ContainerFormatError(
            f"Checksum mismatch for package {manifest.package_id}: "
            f"manifest {manifest.checksum}, computed {computed}"
        )
    return computed


def check_vocabulary_compatibility(
    package_versions: dict[str, str],
    server_versions: dict[str, str],
) -> VocabularyCompatibility:
    """Compare semantic versions per vocabulary domain."""

    result = VocabularyCompatibility()
    for domain, package_version in sorted(package_versions.items()):
        server_version = server_versions.get(domain)
        if server_version is None:
            result.items.append(
                VocabularyCheckItem(
                    domain=domain,
                    package_version=package_version,
                    server_version=None,
                    level="unknown_domain",
                    message=f"Unknown vocabulary domain '{domain}' (v{package_version})",
                )
            )
            continue
        level = compare_versions(package_version, server_version)
        message = None
        if level == "major":
            message = f"{domain}: MAJOR incompatibility (package v{package_version}, server v{server_version})"
        elif level == "minor":
            message = f"{domain}: minor difference (package v{package_version}, server v{server_version})"
        result.items.append(
            VocabularyCheckItem(
                domain=domain,
                package_version=package_version,
                server_version=server_version,
                level=level,
                message=message,
            )
        )
    return result


def compare_versions(left: str, right: str) -> CompatibilityLevel:
    left_parts = _parse_version(left)
    right_parts = _parse_version(right)
    if left_parts[0] != right_parts[0]:
        return "major"
    if left_parts[1] != right_parts[1]:
        return "minor"
    if left_parts[2] != right_parts[2]:
        return "patch"
    return "identical"


def _parse_version(value: str) -> tuple[int, int, int]:
    match = _VERSION_RE.match(value or "")
    if match is None:
        return (0, 0, 0)
    return tuple(int(part) if part else 0 for part in match.groups())  # type: ignore[return-value]


def _canonical_value(value: object) -> str:
    if value is None:
        return _NULL_MARKER
    if isinstance(value, bytes):
        return value.hex()
    return str(value)


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
