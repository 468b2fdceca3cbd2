from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Enum, MetaData, inspect, text
from sqlalchemy.engine import Engine

from campus_api.db import Base


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


def expected_columns(metadata: MetaData) -> dict[str, set[str]]:
    """Every mapped table with its column names, plus alembic's bookkeeping table."""
    required = {table.name: {column.name for column in table.columns} for table in metadata.sorted_tables}
    required["alembic_version"] = {"version_num"}
    return required


def expected_enums(metadata: MetaData) -> dict[str, set[str]]:
    required: dict[str, set[str]] = {}
    for table in metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, Enum) and column.type.name:
                required.setdefault(column.type.name, set()).update(column.type.enums)
    return required


def _missing_columns(inspector: Any, required: dict[str, set[str]]) -> list[str]:
    issues: list[str] = []
    for table_name in sorted(required):
        try:
            present = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue
        missing = sorted(required[table_name] - present)
        if missing:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing)}")
    return issues


def _enum_findings(inspector: Any, required: dict[str, set[str]]) -> tuple[list[str], list[str]]:
    try:
        enums = inspector.get_enums() or []
    except Exception as exc:
        # Dialects without native enums (SQLite) have nothing to compare.
        return [], [f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}"]

    labels_by_name = {
        str(item.get("name")): {str(label) for label in item.get("labels") or []}
        for item in enums
        if item.get("name")
    }
    issues: list[str] = []
    warnings: list[str] = []
    for enum_name in sorted(required):
        if enum_name not in labels_by_name:
            warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing = sorted(required[enum_name] - labels_by_name[enum_name])
        if missing:
            issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing)}")
    return issues, warnings


def _alembic_version_issue(engine: Engine) -> str | None:
    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
    except Exception as exc:
        return f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}"
    if row is None or not str(row).strip():
        return "ALEMBIC_VERSION_EMPTY"
    return None


def verify_runtime_schema(engine: Engine, metadata: MetaData | None = None) -> SchemaGuardResult:
    """Compare the live database with the mapped models before serving traffic."""
    if metadata is None:
        import campus_api.models  # noqa: F401

        metadata = Base.metadata

    inspector = inspect(engine)
    issues = _missing_columns(inspector, expected_columns(metadata))
    enum_issues, warnings = _enum_findings(inspector, expected_enums(metadata))
    issues.extend(enum_issues)
    version_issue = _alembic_version_issue(engine)
    if version_issue:
        issues.append(version_issue)

    return SchemaGuardResult(
        ok=not issues,
        checked_at_utc=datetime.now(timezone.utc),
        issues=issues,
        warnings=warnings,
    )
