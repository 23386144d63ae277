from __future__ import annotations

import logging
import unittest
from pathlib import Path

from embroidery_settings import DEFAULT_SECTIONS, load_settings


class _MissingSecrets:
    """Behaves like `st.secrets` without a secrets.toml."""

    def get(self, key, default=None):
        raise FileNotFoundError("No secrets found")


class TestEmbroiderySettings(unittest.TestCase):
    def test_defaults_run_offline(self) -> None:
        settings = load_settings(environ={})
        self.assertTrue(settings.offline)
        self.assertEqual(settings.cart_timeout_s, 10.0)
        self.assertEqual(settings.sections, DEFAULT_SECTIONS)
        self.assertEqual(settings.sections_url, "/")
        self.assertIsNone(settings.catalog_path)
        self.assertEqual(settings.log_level, logging.INFO)
        self.assertFalse(settings.debug)

    def test_environment_values_are_parsed(self) -> None:
        settings = load_settings(
            environ={
                "EMBROIDERY_CART_URL": "https://shop.example.com/",
                "EMBROIDERY_CART_TIMEOUT_S": "2.5",
                "EMBROIDERY_SECTIONS": "cart-drawer, header ,",
                "EMBROIDERY_CATALOG_PATH": "catalog.json",
                "EMBROIDERY_LOG_PATH": "out/embroidery.jsonl",
                "EMBROIDERY_LOG_LEVEL": "debug",
                "EMBROIDERY_DEBUG": "yes",
            }
        )
        self.assertFalse(settings.offline)
        self.assertEqual(settings.cart_base_url, "https://shop.example.com")
        self.assertEqual(settings.cart_timeout_s, 2.5)
        self.assertEqual(settings.sections, ("cart-drawer", "header"))
        self.assertEqual(settings.catalog_path, Path("catalog.json"))
        self.assertEqual(settings.log_path, Path("out/embroidery.jsonl"))
        self.assertEqual(settings.log_level, logging.DEBUG)
        self.assertTrue(settings.debug)

    def test_secrets_take_precedence_over_environment(self) -> None:
        settings = load_settings(
            secrets={"EMBROIDERY_CART_URL": "https://from-secrets.test"},
            environ={"EMBROIDERY_CART_URL": "https://from-env.test"},
        )
        self.assertEqual(settings.cart_base_url, "https://from-secrets.test")

    def test_missing_secrets_file_falls_back_to_environment(self) -> None:
        settings = load_settings(secrets=_MissingSecrets(), environ={"EMBROIDERY_CART_URL": "https://from-env.test"})
        self.assertEqual(settings.cart_base_url, "https://from-env.test")

    def test_invalid_numbers_and_levels_use_defaults(self) -> None:
        settings = load_settings(
            environ={"EMBROIDERY_CART_TIMEOUT_S": "-3", "EMBROIDERY_LOG_LEVEL": "chatty"},
        )
        self.assertEqual(settings.cart_timeout_s, 10.0)
        self.assertEqual(settings.log_level, logging.INFO)
        self.assertEqual(load_settings(environ={"EMBROIDERY_CART_TIMEOUT_S": "nan"}).cart_timeout_s, 10.0)


if __name__ == "__main__":
    unittest.main()
