"""
demodecomp/ingestion.py - Rates Table Loader

Reads the age-indexed input table consumed by the decomposition
experiments and hands clean numeric vectors to the engine.

Expected layout (one row per Sex and Age):
    Sex | Age | Mx_<p1> | Mx_<p2> | Px_<p1> | Px_<p2>

Features:
1. SHA-256 hash of the input for reproducibility
2. Column alias standardization (sex -> Sex, mx_1950 -> Mx_1950, ...)
3. Schema validation (columns, Sex labels, unique ascending ages)
4. Missing-rate imputation with an audit log, per MissingValuePolicy

Author: Demographic Decomposition Project
License: MIT
"""

import numpy as np
import pandas as pd
import hashlib
import json
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union, Any
from dataclasses import dataclass, field
from pathlib import Path
from enum import Enum
import logging

from .exceptions import MissingValueError, SchemaError
from .kitagawa import normalize_structure, pack_pars
from .lifetable import MissingValuePolicy

logger = logging.getLogger(__name__)


class ImputationType(Enum):
    """Types of data imputation."""
    RATE_ZERO = "rate_zero"


@dataclass
class ImputationRecord:
    """Record of a single imputation action."""
    sex: str
    age: int
    field_name: str
    imputation_type: ImputationType
    original_value: Any
    imputed_value: Any
    reason: str


@dataclass(frozen=True)
class SexVectors:
    """Aligned input vectors for one Sex."""
    sex: str
    ages: np.ndarray
    Mx1: np.ndarray
    Mx2: np.ndarray
    Px1: np.ndarray
    Px2: np.ndarray

    def structure1(self) -> np.ndarray:
        return normalize_structure(self.Px1)

    def structure2(self) -> np.ndarray:
        return normalize_structure(self.Px2)

    def packed(self) -> Tuple[np.ndarray, np.ndarray]:
        """Packed [rates..., structure...] vectors for both periods."""
        return (pack_pars(self.Mx1, self.structure1()),
                pack_pars(self.Mx2, self.structure2()))


@dataclass
class RatesTable:
    """Clean rates table plus its audit information."""
    data: pd.DataFrame
    periods: Tuple[str, str]
    input_hash: str
    input_filename: str
    imputation_log: List[ImputationRecord] = field(default_factory=list)
    processing_timestamp: datetime = field(default_factory=datetime.now)

    def sexes(self) -> List[str]:
        return list(pd.unique(self.data['Sex']))

    def vectors(self, sex: str) -> SexVectors:
        sub = self.data[self.data['Sex'] == sex]
        if sub.empty:
            raise SchemaError(f"No rows for Sex={sex!r}; available: {self.sexes()}")
        p1, p2 = self.periods
        return SexVectors(
            sex=sex,
            ages=sub['Age'].to_numpy(dtype=int),
            Mx1=sub[f'Mx_{p1}'].to_numpy(dtype=np.float64),
            Mx2=sub[f'Mx_{p2}'].to_numpy(dtype=np.float64),
            Px1=sub[f'Px_{p1}'].to_numpy(dtype=np.float64),
            Px2=sub[f'Px_{p2}'].to_numpy(dtype=np.float64),
        )

    def get_summary(self) -> Dict:
        return {
            'input_file': self.input_filename,
            'input_hash': self.input_hash,
            'periods': list(self.periods),
            'sexes': self.sexes(),
            'rows': int(len(self.data)),
            'imputation_count': len(self.imputation_log),
            'processing_timestamp': self.processing_timestamp.isoformat(),
        }

    def to_audit_json(self, filepath: Union[str, Path]) -> None:
        """Export audit trail to JSON."""
        audit = {
            'summary': self.get_summary(),
            'imputations': [
                {
                    'sex': r.sex,
                    'age': r.age,
                    'field': r.field_name,
                    'type': r.imputation_type.value,
                    'original': str(r.original_value),
                    'imputed': str(r.imputed_value),
                    'reason': r.reason,
                }
                for r in self.imputation_log
            ]
        }
        with open(filepath, 'w') as f:
            json.dump(audit, f, indent=2)


# =============================================================================
# LOADER
# =============================================================================

class RatesTableLoader:
    """
    Loader for Sex/Age rates tables.

    Rates may be missing (coerced per policy); exposures may not.
    """

    SEX_ALIASES = {
        'm': 'Male', 'male': 'Male', 'men': 'Male',
        'f': 'Female', 'female': 'Female', 'women': 'Female',
        't': 'Total', 'total': 'Total', 'both': 'Total',
    }

    def __init__(self, periods: Sequence[Union[str, int]] = ("1950", "2000"),
                 missing: MissingValuePolicy = MissingValuePolicy.ZERO):
        """
        Initialize loader.

        Args:
            periods: The two period labels used in column suffixes
            missing: Policy for missing rates
        """
        self.periods = tuple(str(p) for p in periods)
        if len(self.periods) != 2:
            raise ValueError("exactly two periods are required")
        self.missing = missing
        self.imputation_log: List[ImputationRecord] = []

    @property
    def rate_columns(self) -> List[str]:
        return [f'Mx_{p}' for p in self.periods]

    @property
    def exposure_columns(self) -> List[str]:
        return [f'Px_{p}' for p in self.periods]

    def load_file(self, filepath: Union[str, Path],
                  sheet_name: Optional[str] = None) -> RatesTable:
        """
        Load a CSV or Excel rates table.

        Args:
            filepath: Path to .csv, .xlsx or .xls file
            sheet_name: Sheet name for Excel files (first sheet by default)

        Returns:
            RatesTable with clean data and audit information
        """
        filepath = Path(filepath)
        file_hash = self._hash_file(filepath)
        logger.info(f"Loading file: {filepath.name} (SHA-256: {file_hash[:16]}...)")

        if filepath.suffix.lower() in ('.xlsx', '.xls'):
            df = pd.read_excel(filepath, sheet_name=sheet_name if sheet_name is not None else 0)
        elif filepath.suffix.lower() == '.csv':
            df = pd.read_csv(filepath)
        else:
            raise ValueError(f"Unsupported file format: {filepath.suffix}")

        return self.load_frame(df, input_filename=filepath.name, input_hash=file_hash)

    def load_frame(self, df: pd.DataFrame, input_filename: str = "<dataframe>",
                   input_hash: Optional[str] = None) -> RatesTable:
        """Validate and clean an in-memory rates table."""
        self.imputation_log = []
        if input_hash is None:
            input_hash = hashlib.sha256(
                pd.util.hash_pandas_object(df, index=False).to_numpy().tobytes()
            ).hexdigest()

        df = self._standardize_columns(df.copy())
        self._validate_columns(df)
        df = self._standardize_sexes(df)
        self._validate_ages(df)
        df = df.sort_values(['Sex', 'Age'], kind='stable').reset_index(drop=True)
        self._validate_exposures(df)
        df = self._impute_rates(df)

        logger.info(
            f"Loaded {len(df)} rows for {df['Sex'].nunique()} sex group(s), "
            f"{len(self.imputation_log)} imputation(s)"
        )
        return RatesTable(
            data=df,
            periods=self.periods,
            input_hash=input_hash,
            input_filename=input_filename,
            imputation_log=self.imputation_log.copy(),
        )

    def _hash_file(self, filepath: Path) -> str:
        sha256 = hashlib.sha256()
        with open(filepath, 'rb') as f:
            for chunk in iter(lambda: f.read(65536), b''):
                sha256.update(chunk)
        return sha256.hexdigest()

    def _standardize_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        rename = {}
        for col in df.columns:
            key = str(col).strip().lower()
            if key == 'sex':
                rename[col] = 'Sex'
            elif key == 'age':
                rename[col] = 'Age'
            elif key.startswith(('mx_', 'px_')):
                rename[col] = key[:2].capitalize() + key[2:]
        return df.rename(columns=rename)

    def _validate_columns(self, df: pd.DataFrame) -> None:
        required = ['Sex', 'Age'] + self.rate_columns + self.exposure_columns
        missing_cols = [c for c in required if c not in df.columns]
        if missing_cols:
            raise SchemaError(f"Rates table is missing columns: {missing_cols}")

    def _standardize_sexes(self, df: pd.DataFrame) -> pd.DataFrame:
        labels = df['Sex'].astype(str).str.strip().str.lower()
        mapped = labels.map(self.SEX_ALIASES)
        unknown = sorted(df.loc[mapped.isna(), 'Sex'].astype(str).unique())
        if unknown:
            raise SchemaError(f"Unknown Sex label(s): {unknown}")
        df['Sex'] = mapped
        return df

    def _validate_ages(self, df: pd.DataFrame) -> None:
        if df['Age'].isna().any():
            raise SchemaError("Age must not be missing")
        df['Age'] = df['Age'].astype(int)
        duplicated = df.duplicated(['Sex', 'Age'])
        if duplicated.any():
            dupes = df.loc[duplicated, ['Sex', 'Age']].drop_duplicates()
            raise SchemaError(f"Duplicate ages: {dupes.to_dict('records')}")

    def _validate_exposures(self, df: pd.DataFrame) -> None:
        for col in self.exposure_columns:
            values = pd.to_numeric(df[col], errors='coerce')
            if values.isna().any():
                raise SchemaError(f"{col} has missing or non-numeric values")
            if (values < 0).any():
                raise SchemaError(f"{col} must be >= 0")
            df[col] = values.astype(np.float64)

    def _impute_rates(self, df: pd.DataFrame) -> pd.DataFrame:
        for col in self.rate_columns:
            values = pd.to_numeric(df[col], errors='coerce')
            if (values < 0).any():
                raise SchemaError(f"{col} must be >= 0")
            na = values.isna()
            if na.any():
                if self.missing is MissingValuePolicy.RAISE:
                    rows = df.loc[na, ['Sex', 'Age']].to_dict('records')
                    raise MissingValueError(f"{col} missing for {rows}")
                for idx in df.index[na]:
                    self.imputation_log.append(ImputationRecord(
                        sex=str(df.at[idx, 'Sex']),
                        age=int(df.at[idx, 'Age']),
                        field_name=col,
                        imputation_type=ImputationType.RATE_ZERO,
                        original_value=df.at[idx, col],
                        imputed_value=0.0,
                        reason="Rate not available; zero hazard assumed",
                    ))
                logger.warning(f"{col}: coerced {int(na.sum())} missing rate(s) to 0")
                values = values.fillna(0.0)
            df[col] = values.astype(np.float64)
        return df


def write_results(frames: Dict[str, pd.DataFrame], output_dir: Union[str, Path],
                  fmt: str = "csv") -> List[Path]:
    """
    Write named result tables to output_dir.

    Args:
        frames: Table name -> DataFrame
        output_dir: Target directory (created if needed)
        fmt: 'csv' for one file per table, 'xlsx' for one workbook

    Returns:
        Paths written
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if fmt == "csv":
        paths = []
        for name, frame in frames.items():
            path = output_dir / f"{name}.csv"
            frame.to_csv(path, index=False)
            paths.append(path)
        return paths
    if fmt == "xlsx":
        path = output_dir / "decomposition_results.xlsx"
        with pd.ExcelWriter(path, engine='openpyxl') as writer:
            for name, frame in frames.items():
                frame.to_excel(writer, sheet_name=name[:31], index=False)
        return [path]
    raise ValueError(f"Unsupported output format: {fmt}")
