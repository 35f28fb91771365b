"""Level 5: coordinates and WKT geometries."""

from __future__ import annotations

import re

from survey_import.models.staging import StagingBuilding
from survey_import.services.staging_repository import StagingBatch
from survey_import.validation.base import BoundingBox, Findings, ValidationContext, Validator

_GEOMETRY_TYPES = ("MULTIPOLYGON", "POLYGON", "POINT")
_NUMBER_RE = re.compile(r"^[-+]?\d+(?:\.\d+)?$")


def parse_wkt_coordinates(wkt: str) -> tuple[str, list[tuple[float, float]]]:
    """Return ``(geometry_type, [(x, y), ...])`` or raise ``ValueError``."""

    text = wkt.strip()
    upper = text.upper()
    geometry_type = next((kind for kind in _GEOMETRY_TYPES if upper.startswith(kind)), None)
    if geometry_type is None:
        raise ValueError("geometry must be POINT, POLYGON or MULTIPOLYGON")
    body = text[len(geometry_type):].strip()
    if not body.startswith("(") or not body.endswith(")"):
        raise ValueError("geometry body must be parenthesized")

    depth = 0
    for char in body:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise ValueError("unbalanced parentheses")
    if depth != 0:
        raise ValueError("unbalanced parentheses")

    points: list[tuple[float, float]] = []
    for chunk in re.split(r"[(),]", body):
        tokens = chunk.split()
        if not tokens:
            continue
        if len(tokens) < 2 or not all(_NUMBER_RE.match(token) for token in tokens[:2]):
            raise ValueError(f"invalid coordinate '{chunk.strip()}'")
        points.append((float(tokens[0]), float(tokens[1])))
    if not points:
        raise ValueError("geometry has no coordinates")
    if geometry_type != "POINT" and len(points) < 4:
        raise ValueError("polygon rings need at least four points")
    return geometry_type, points


class SpatialGeometryValidator(Validator):
    """Building coordinates lie inside the configured region and WKT is well formed."""

    level = 5
    name = "SpatialGeometry"

    def validate(self, batch: StagingBatch, context: ValidationContext, findings: Findings) -> None:
        box = context.bounding_box
        for building in batch.records(StagingBuilding.ENTITY_TYPE, include_skipped=False):
            findings.checked()
            self._check_point(building, box, findings)
            if building.building_geometry_wkt:
                self._check_geometry(building, box, findings)

    def _check_point(self, building: StagingBuilding, box: BoundingBox, findings: Findings) -> None:
        latitude, longitude = building.latitude, building.longitude
        if latitude is None and longitude is None:
            if not building.building_geometry_wkt:
                findings.warning(building, "building has no coordinates or geometry")
            return
        if latitude is None or longitude is None:
            findings.error(building, "latitude and longitude must be provided together")
            return
        if not box.contains(latitude, longitude):
            findings.error(
                building,
                f"coordinates ({latitude}, {longitude}) fall outside the allowed region",
            )

    def _check_geometry(self, building: StagingBuilding, box: BoundingBox, findings: Findings) -> None:
        try:
            _, points = parse_wkt_coordinates(building.building_geometry_wkt or "")
        except ValueError as exc:
            findings.error(building, f"invalid building_geometry_wkt: {exc}")
            return
        # WKT is x=longitude, y=latitude.
        if any(not box.contains(y, x) for x, y in points):
            findings.error(building, "building_geometry_wkt has vertices outside the allowed region")
