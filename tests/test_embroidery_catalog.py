from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from embroidery_catalog import build_sample_catalog, load_catalog, load_catalog_or_sample, parse_catalog
from embroidery_engine import CatalogError


def _doc() -> dict:
    return {
        "base_price_cents": 700,
        "base_variant_id": "900",
        "groups": [
            {
                "name": "font",
                "values": [
                    {"value": "Serif"},
                    {"value": "Script", "price_delta_cents": 300, "remote_variant_id": 901, "preview_value": "cursive"},
                ],
            },
            {
                "name": "color",
                "values": [{"value": "Red", "is_color_kind": True, "preview_value": "#ff0000"}],
            },
        ],
    }


class TestEmbroideryCatalog(unittest.TestCase):
    def test_parse_catalog_reads_groups_and_values(self) -> None:
        catalog = parse_catalog(_doc())
        self.assertEqual(catalog.base_price_cents, 700)
        self.assertEqual(catalog.base_variant_id, "900")
        self.assertEqual(catalog.group_names, ("font", "color"))

        script = catalog.group("font").find("Script")
        self.assertIsNotNone(script)
        self.assertEqual(script.price_delta_cents, 300)
        self.assertEqual(script.remote_variant_id, "901")
        self.assertEqual(script.css_value, "cursive")

        serif = catalog.group("font").find("Serif")
        self.assertEqual(serif.price_delta_cents, 0)
        self.assertIsNone(serif.remote_variant_id)
        self.assertEqual(serif.css_value, "Serif")
        self.assertTrue(catalog.group("color").find("Red").is_color_kind)

    def test_duplicate_group_is_rejected(self) -> None:
        doc = _doc()
        doc["groups"].append({"name": "font", "values": [{"value": "Block"}]})
        with self.assertRaises(CatalogError):
            parse_catalog(doc)

    def test_duplicate_value_is_rejected(self) -> None:
        doc = _doc()
        doc["groups"][0]["values"].append({"value": "Serif"})
        with self.assertRaises(CatalogError):
            parse_catalog(doc)

    def test_empty_group_is_rejected(self) -> None:
        doc = _doc()
        doc["groups"][1]["values"] = []
        with self.assertRaises(CatalogError):
            parse_catalog(doc)

    def test_invalid_base_price_is_rejected(self) -> None:
        for bad in (-1, "5.00", True):
            doc = _doc()
            doc["base_price_cents"] = bad
            with self.assertRaises(CatalogError):
                parse_catalog(doc)

    def test_load_catalog_from_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "catalog.json"
            path.write_text(json.dumps(_doc()), encoding="utf-8")
            self.assertEqual(load_catalog(path), parse_catalog(_doc()))
            self.assertEqual(load_catalog_or_sample(path).base_price_cents, 700)

    def test_load_catalog_rejects_invalid_json(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "catalog.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(CatalogError):
                load_catalog(path)

    def test_sample_catalog_is_used_without_a_path(self) -> None:
        self.assertEqual(load_catalog_or_sample(None), build_sample_catalog())


if __name__ == "__main__":
    unittest.main()
