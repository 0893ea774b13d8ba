from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .http import HttpClient
from .models import CatalogProduct


def _opt_float(val: Any) -> float | None:
    if val is None or val == "" or isinstance(val, bool):
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def _opt_str(val: Any) -> str | None:
    if val is None:
        return None
    s = str(val).strip()
    return s or None


def product_from_row(row: dict[str, Any]) -> CatalogProduct | None:
    """Map a catalog row to a product; rows without id, name or a positive price are skipped."""
    _id = row.get("product_id") or row.get("id") or row.get("sku")
    name = _opt_str(row.get("name"))
    price = _opt_float(row.get("price"))
    if _id is None or not name or price is None or price <= 0:
        return None
    return CatalogProduct(
        id=str(_id),
        name=name,
        price=price,
        brand=_opt_str(row.get("brand")),
        size_value=_opt_float(row.get("size_value", row.get("size"))),
        size_unit=_opt_str(row.get("size_unit")),
        unit_measure=_opt_str(row.get("unit_measure") or row.get("unit")),
        category=_opt_str(row.get("category")),
    )


def products_from_rows(rows: list[dict[str, Any]]) -> list[CatalogProduct]:
    out: list[CatalogProduct] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        p = product_from_row(row)
        if p is not None:
            out.append(p)
    return out


class StaticCatalog:
    def __init__(self, products: list[CatalogProduct]):
        self._products = list(products)

    def list_products(self) -> list[CatalogProduct]:
        return list(self._products)


class JsonFileCatalog:
    """Catalog snapshot stored as a JSON list of rows (or {"products": [...]})."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def list_products(self) -> list[CatalogProduct]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise RuntimeError(f"Failed to read catalog file {self.path}: {e}")
        if isinstance(data, dict):
            data = data.get("products") or data.get("items") or []
        return products_from_rows(data)


class SupabaseCatalog:
    """Full-table read of the products table over Supabase's REST API."""

    def __init__(self, *, url: str, api_key: str, table: str = "products", timeout_s: float = 30.0):
        self.http = HttpClient(
            base_url=url,
            headers={"apikey": api_key, "Authorization": f"Bearer {api_key}"},
            timeout_s=timeout_s,
        )
        self.table = table

    def list_products(self) -> list[CatalogProduct]:
        path = f"/rest/v1/{self.table}"
        resp = self.http.get(path, params={"select": "*"})
        if resp.status_code >= 400:
            raise RuntimeError(f"Supabase API error {resp.status_code} for {path}: {resp.text[:500]}")
        try:
            rows = resp.json()
        except ValueError as e:
            raise RuntimeError(f"Failed to decode JSON from Supabase for {path}: {e}")
        if not isinstance(rows, list):
            raise RuntimeError(f"Unexpected Supabase payload for {path}: {type(rows).__name__}")
        return products_from_rows(rows)
