from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

import duckdb

from cr_calculators.risk_assessment_calculator.errors import PersistenceError
from cr_calculators.risk_assessment_calculator.models import (
    AssessmentRecord,
    AssessmentStatus,
    AssessmentType,
)
from cr_dagster.db.bootstrap import to_utc_naive

logger = logging.getLogger(__name__)

_SELECT_COLUMNS = "record, status, updated_at"


def _row_to_record(row: tuple) -> AssessmentRecord:
    record_json, status, updated_at = row
    record = AssessmentRecord.model_validate_json(record_json)
    # status and updated_at columns are authoritative after creation
    return record.model_copy(
        update={
            "status": AssessmentStatus(status),
            "updated_at": updated_at.replace(tzinfo=UTC) if updated_at else record.updated_at,
        }
    )


class AssessmentRepository:
    """Persistence service for assessment records in main_clinical.assessments.

    Saving a new assessment supersedes every active assessment of the same type
    for the same patient; rows are never deleted. Saves made inside
    ``transaction()`` commit or roll back together.
    """

    def __init__(self, con: duckdb.DuckDBPyConnection):
        self.con = con
        self._in_transaction = False

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several writes into one DuckDB transaction.

        Any error rolls back every write made in the block; DuckDB errors are
        re-raised as PersistenceError.
        """
        if self._in_transaction:
            yield
            return
        self.con.begin()
        self._in_transaction = True
        try:
            yield
        except duckdb.Error as exc:
            self.con.rollback()
            logger.error("Rolled back assessment transaction: %s", exc)
            raise PersistenceError("Assessment transaction failed") from exc
        except BaseException:
            self.con.rollback()
            raise
        else:
            self.con.commit()
        finally:
            self._in_transaction = False

    def save(self, record: AssessmentRecord, run_id: str | None = None) -> str:
        """Insert an assessment and supersede older active ones. Returns the id."""
        at = datetime.now(UTC)
        with self.transaction():
            try:
                previous = self._write(record, run_id, at)
            except duckdb.Error as exc:
                logger.error("Failed to save assessment %s: %s", record.id, exc)
                raise PersistenceError(f"Failed to save assessment {record.id}") from exc

        if previous:
            logger.info(
                "Superseded %d %s assessment(s) for patient %s",
                len(previous),
                record.assessment_type.value,
                record.patient_id,
            )
        return record.id

    def _write(self, record: AssessmentRecord, run_id: str | None, at: datetime) -> list[tuple]:
        previous = self.con.execute(
            """
            SELECT id
            FROM main_clinical.assessments
            WHERE patient_id = ? AND assessment_type = ? AND status = ? AND id <> ?
            """,
            [
                record.patient_id,
                record.assessment_type.value,
                AssessmentStatus.active.value,
                record.id,
            ],
        ).fetchall()
        for (previous_id,) in previous:
            self.con.execute(
                """
                UPDATE main_clinical.assessments
                SET status = ?, updated_at = ?
                WHERE id = ?
                """,
                [AssessmentStatus.superseded.value, to_utc_naive(at), previous_id],
            )

        self.con.execute(
            """
            INSERT INTO main_clinical.assessments (
                id,
                patient_id,
                assessment_type,
                assessment_date,
                assessed_by,
                strategy,
                score,
                risk_level,
                status,
                next_assessment_due,
                run_id,
                record,
                created_at,
                updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                record.id,
                record.patient_id,
                record.assessment_type.value,
                to_utc_naive(record.assessment_date),
                record.assessed_by,
                record.strategy.value if record.strategy else None,
                record.score,
                record.risk_level.value,
                record.status.value,
                to_utc_naive(record.next_assessment_due),
                run_id,
                record.model_dump_json(),
                to_utc_naive(record.created_at),
                to_utc_naive(record.updated_at),
            ],
        )
        return previous

    def get(self, assessment_id: str) -> AssessmentRecord | None:
        row = self._fetchone(
            f"SELECT {_SELECT_COLUMNS} FROM main_clinical.assessments WHERE id = ?",
            [assessment_id],
        )
        return _row_to_record(row) if row else None

    def get_latest(
        self, patient_id: str, assessment_type: AssessmentType | str
    ) -> AssessmentRecord | None:
        """Most recent assessment of a type for a patient, or None."""
        row = self._fetchone(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM main_clinical.assessments
            WHERE patient_id = ? AND assessment_type = ?
            ORDER BY assessment_date DESC, created_at DESC
            LIMIT 1
            """,
            [patient_id, AssessmentType(assessment_type).value],
        )
        return _row_to_record(row) if row else None

    def list_by_patient(self, patient_id: str) -> list[AssessmentRecord]:
        """All assessments for a patient, newest first."""
        try:
            rows = self.con.execute(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM main_clinical.assessments
                WHERE patient_id = ?
                ORDER BY assessment_date DESC, created_at DESC
                """,
                [patient_id],
            ).fetchall()
        except duckdb.Error as exc:
            raise PersistenceError(f"Failed to list assessments for patient {patient_id}") from exc
        return [_row_to_record(row) for row in rows]

    def update_status(
        self,
        assessment_id: str,
        status: AssessmentStatus | str,
        at: datetime | None = None,
    ) -> AssessmentRecord | None:
        """Move an assessment to a new status. Returns None for an unknown id.

        Raises AssessmentValidationError for a transition out of a final status.
        """
        current = self.get(assessment_id)
        if current is None:
            return None
        updated = current.with_status(status, at or datetime.now(UTC))
        try:
            self.con.execute(
                """
                UPDATE main_clinical.assessments
                SET status = ?, updated_at = ?
                WHERE id = ?
                """,
                [updated.status.value, to_utc_naive(updated.updated_at), assessment_id],
            )
        except duckdb.Error as exc:
            raise PersistenceError(f"Failed to update assessment {assessment_id}") from exc
        return updated

    def _fetchone(self, sql: str, params: list) -> tuple | None:
        try:
            return self.con.execute(sql, params).fetchone()
        except duckdb.Error as exc:
            raise PersistenceError("Failed to read assessments") from exc
