"""Column copying between staging and production shapes of one entity."""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy import inspect as sa_inspect

_NON_DATA_COLUMNS = frozenset(
    {"id", "created_at", "updated_at", "source_package_id", "is_deleted", "merged_into_id"}
)


@lru_cache(maxsize=None)
def shared_data_columns(staging_model: type, production_model: type) -> tuple[str, ...]:
    """Data columns present on both models, excluding bookkeeping and reference columns."""

    staging_columns = set(sa_inspect(staging_model).columns.keys())
    references = set(getattr(staging_model, "REFERENCES", {}))
    return tuple(
        name
        for name in sa_inspect(production_model).columns.keys()
        if name in staging_columns and name not in _NON_DATA_COLUMNS and name not in references
    )


def gap_fill(target: object, source: object, columns: tuple[str, ...]) -> list[str]:
    """Copy values from ``source`` into empty columns of ``target``; returns the filled names."""

    filled = []
    for name in columns:
        if getattr(target, name) in (None, "") and getattr(source, name) not in (None, ""):
            setattr(target, name, getattr(source, name))
            filled.append(name)
    return filled


def overwrite(target: object, source: object, columns: tuple[str, ...]) -> list[str]:
    """Copy every non-empty value from ``source`` onto ``target``; returns the changed names."""

    changed = []
    for name in columns:
        value = getattr(source, name)
        if value not in (None, "") and getattr(target, name) != value:
            setattr(target, name, value)
            changed.append(name)
    return changed
