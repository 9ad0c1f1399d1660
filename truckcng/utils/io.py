"""File I/O utilities for CSV and XLSX."""
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

import pandas as pd

logger = logging.getLogger(__name__)


def read_data_file(file_path: Union[str, Path]) -> pd.DataFrame:
    """
    Read CSV or XLSX file into DataFrame.

    All columns are read as strings so postal codes keep their leading zeros.

    Args:
        file_path: Path to CSV or XLSX file

    Returns:
        DataFrame with file contents

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is not supported
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    suffix = file_path.suffix.lower()

    try:
        if suffix == ".csv":
            # sep=None sniffs ";" exports from Brazilian spreadsheets as well as ","
            df = pd.read_csv(file_path, dtype=str, keep_default_na=False, sep=None, engine="python")
        elif suffix == ".xlsx":
            df = pd.read_excel(file_path, engine="openpyxl", dtype=str).fillna("")
        elif suffix == ".xls":
            df = pd.read_excel(file_path, engine="xlrd", dtype=str).fillna("")
        else:
            raise ValueError(f"Unsupported file format: {suffix}")

        logger.info(f"Loaded {len(df)} rows from {file_path}")
        return df

    except Exception as e:
        logger.error(f"Error reading {file_path}: {e}")
        raise


@contextmanager
def atomic_replace(path: Union[str, Path], copy_existing: bool = False) -> Iterator[Path]:
    """
    Yield a temp path beside ``path``; rename it over ``path`` on success.

    With ``copy_existing`` the temp file starts as a copy of the current file,
    which lets callers append without ever exposing a half-written target.
    On error the temp file is removed and ``path`` is left untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        if copy_existing and path.exists():
            shutil.copyfile(path, tmp_path)
        yield tmp_path
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def atomic_write_text(path: Union[str, Path], text: str, encoding: str = "utf-8"):
    """Write ``text`` to ``path`` via write-then-rename."""
    with atomic_replace(path) as tmp_path:
        tmp_path.write_text(text, encoding=encoding)
