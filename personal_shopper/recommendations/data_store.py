from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from .models import Product

logger = logging.getLogger(__name__)

CATALOG_COLUMNS = ["id", "name", "category", "brand", "price", "style_tags", "available"]
REQUIRED_COLUMNS = ["id", "category", "brand", "price"]

_TRUTHY = {"true", "1", "yes", "y"}


def _load(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path, dtype={"id": str})

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"catalog {path} is missing columns: {', '.join(missing)}")

    df["name"] = df["name"].fillna("") if "name" in df.columns else ""
    df["price"] = pd.to_numeric(df["price"], errors="coerce")

    # Style tags are pipe-separated, e.g. "minimal|classic"
    if "style_tags" in df.columns:
        df["style_tags_list"] = (
            df["style_tags"]
            .fillna("")
            .astype(str)
            .apply(lambda s: tuple(t.strip() for t in s.split("|") if t.strip()))
        )
    else:
        df["style_tags_list"] = [() for _ in range(len(df))]

    if "available" in df.columns:
        df["available"] = df["available"].astype(str).str.strip().str.lower().isin(_TRUTHY)
    else:
        df["available"] = True

    dropped = df["price"].isna() | df["category"].isna() | df["brand"].isna()
    if dropped.any():
        logger.warning("Skipping %d catalog rows with missing price/category/brand", int(dropped.sum()))
    return df.loc[~dropped]


def load_catalog(path: Path) -> list[Product]:
    """Read a catalog CSV into ``Product`` records, ordered by id."""
    df = _load(path)
    products = [
        Product(
            id=str(row["id"]),
            name=str(row["name"]),
            category=str(row["category"]),
            brand=str(row["brand"]),
            price=float(row["price"]),
            style_tags=row["style_tags_list"],
            available=bool(row["available"]),
        )
        for _, row in df.iterrows()
    ]
    logger.info("Loaded %d products from %s", len(products), path)
    return sorted(products, key=lambda p: p.id)
