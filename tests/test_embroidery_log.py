from __future__ import annotations

import json
import logging
import tempfile
import unittest
from pathlib import Path

from embroidery_log import ROOT_LOGGER, JsonLinesFormatter, get_logger, log_event, setup_logging


def _reset_root_logger() -> None:
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
    root.propagate = True


class TestEmbroideryLog(unittest.TestCase):
    def tearDown(self) -> None:
        _reset_root_logger()

    def test_formatter_writes_one_json_object_per_record(self) -> None:
        record = logging.LogRecord("embroidery.cart", logging.WARNING, __file__, 1, "Cart rejected", None, None)
        record.location = "cart_client.py:_decode"
        record.data = {"status_code": 422}
        entry = json.loads(JsonLinesFormatter().format(record))
        self.assertEqual(entry["level"], "WARNING")
        self.assertEqual(entry["logger"], "embroidery.cart")
        self.assertEqual(entry["msg"], "Cart rejected")
        self.assertEqual(entry["location"], "cart_client.py:_decode")
        self.assertEqual(entry["data"], {"status_code": 422})
        self.assertIn("ts", entry)

    def test_loggers_live_under_the_package_root(self) -> None:
        self.assertEqual(get_logger("store").name, "embroidery.store")

    def test_setup_logging_writes_json_lines_file_once(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "logs" / "embroidery.jsonl"
            setup_logging(path, logging.DEBUG)
            setup_logging(path, logging.DEBUG)
            self.assertEqual(len(logging.getLogger(ROOT_LOGGER).handlers), 1)

            log_event(
                get_logger("test"),
                "Retrofit failed",
                location="test_embroidery_log.py",
                data={"line": "line-1"},
                level=logging.WARNING,
                exc_info=RuntimeError("boom"),
            )
            for handler in logging.getLogger(ROOT_LOGGER).handlers:
                handler.flush()

            lines = path.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 1)
            entry = json.loads(lines[0])
            self.assertEqual(entry["msg"], "Retrofit failed")
            self.assertEqual(entry["data"], {"line": "line-1"})
            self.assertEqual(entry["error"], "boom")
            # Release the file before the temp dir is removed.
            _reset_root_logger()


if __name__ == "__main__":
    unittest.main()
