from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import duckdb
from dagster import ConfigurableResource

from cr_calculators.risk_assessment_calculator.duckdb_to_csv import default_duckdb_path
from cr_dagster.db.bootstrap import ensure_clinical_warehouse


class ClinicalWarehouse(ConfigurableResource):
    """DuckDB warehouse holding assessment inputs, saved assessments and scoring runs.

    Every connection handed out has the clinical schemas in place, so assets and
    CLI commands never run against a half-created warehouse.
    """

    path: str = default_duckdb_path()

    def resolved_path(self) -> Path:
        return Path(self.path).expanduser().resolve()

    @contextmanager
    def connect(self) -> Iterator[duckdb.DuckDBPyConnection]:
        con = duckdb.connect(str(self.resolved_path()))
        try:
            ensure_clinical_warehouse(con)
            yield con
        finally:
            con.close()
