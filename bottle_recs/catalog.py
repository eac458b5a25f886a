from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import pandas as pd
from loguru import logger

from .config import CATALOG_PATH, Bottle


def catalog_from_frame(df: pd.DataFrame) -> List[Bottle]:
    """
    Validate catalog rows as ``Bottle`` records.

    NaN cells become ``None`` so unknown numbers stay unknown.
    """
    if df.empty:
        return []
    if "id" not in df.columns or "name" not in df.columns:
        raise ValueError(f"Catalog is missing required columns; got {list(df.columns)}")

    df = df.dropna(subset=["id"])
    clean = df.astype(object).where(pd.notna(df), None)
    # records may omit fields other records carry; let model defaults apply
    return [
        Bottle(**{k: v for k, v in row.items() if v is not None})
        for row in clean.to_dict(orient="records")
    ]


def load_catalog(path: Path = CATALOG_PATH) -> List[Bottle]:
    """
    Load the static candidate catalog (a JSON array of bottle records).
    """
    logger.info("Loading bottle catalog from {}", path)
    df = pd.read_json(path, orient="records", dtype=False)
    bottles = catalog_from_frame(df)
    logger.info("Loaded catalog with {} bottles", len(bottles))
    return bottles


def exclude_bottle(catalog: Sequence[Bottle], bottle_id: int) -> List[Bottle]:
    return [b for b in catalog if b.id != bottle_id]
