import json
import os
import tempfile
import unittest

from fastapi.testclient import TestClient

from modcheck.api.main import app, state
from modcheck.validation import ValidationOrchestrator


def write_module(root: str, name: str, files: dict, manifest: dict) -> str:
    path = os.path.join(root, name)
    os.makedirs(path)
    for rel, content in files.items():
        target = os.path.join(path, rel)
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            f.write(content)
    with open(os.path.join(path, "package.json"), "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)
    return path


class ModCheckApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        state["orchestrator"] = ValidationOrchestrator()
        cls.client_context = TestClient(app)
        cls.client = cls.client_context.__enter__()

    @classmethod
    def tearDownClass(cls) -> None:
        cls.client_context.__exit__(None, None, None)
        state["orchestrator"] = None

    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = self.tmp.name
        self.bare = write_module(self.root, "bare", {}, {"name": "bare", "version": "1.0.0"})
        self.docs = write_module(
            self.root, "docs", {"README.md": "# Docs\n", "src/index.js": "module.exports = {};\n"},
            {"name": "docs", "version": "1.0.0"},
        )

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_health(self) -> None:
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "healthy")
        self.assertGreater(payload["rules"], 0)

    def test_rules_listing(self) -> None:
        everything = self.client.get("/rules").json()
        library = self.client.get("/rules", params={"module_type": "library"}).json()

        self.assertEqual(everything["total"], len(everything["rules"]))
        self.assertIn("README_EXISTS", [r["rule_id"] for r in everything["rules"]])
        self.assertLessEqual(library["total"], everything["total"])

    def test_validate_missing_module_is_404(self) -> None:
        response = self.client.post("/validate", json={"module_path": os.path.join(self.root, "nope")})
        self.assertEqual(response.status_code, 404)

    def test_validate_module(self) -> None:
        response = self.client.post("/validate", json={
            "module_path": self.bare,
            "include_rules": ["README_EXISTS", "PACKAGE_JSON_EXISTS"],
        })
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["module_id"], "bare")
        self.assertEqual(payload["overall_score"], 50.0)
        self.assertEqual(payload["status"], "FAIL")
        self.assertEqual(payload["exit_code"], 1)
        self.assertEqual([r["rule_id"] for r in payload["results"]], ["PACKAGE_JSON_EXISTS", "README_EXISTS"])

    def test_batch_lists_failed_items(self) -> None:
        missing = os.path.join(self.root, "nope")
        response = self.client.post("/batch", json={
            "module_paths": [self.bare, self.docs, missing],
            "include_rules": ["README_EXISTS"],
            "max_concurrent": 2,
        })
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["completed"], 2)
        self.assertEqual([f["reason"] for f in payload["failed_items"]], ["path_not_found"])
        self.assertEqual(payload["summary"]["status_breakdown"]["error"], 1)
        self.assertEqual(payload["exit_code"], 2)

    def test_batch_discovers_modules(self) -> None:
        by_root = self.client.post("/batch", json={"root": self.root, "include_rules": ["README_EXISTS"]}).json()
        by_glob = self.client.post("/batch", json={
            "module_paths": [os.path.join(self.root, "*")],
            "include_rules": ["README_EXISTS"],
        }).json()

        self.assertEqual(by_root["completed"], 2)
        self.assertEqual(by_glob["completed"], 2)
        self.assertEqual(sorted(r["module_id"] for r in by_root["reports"]), ["bare", "docs"])

    def test_fix_dry_run(self) -> None:
        response = self.client.post("/fix", json={"module_path": self.bare, "dry_run": True})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["fixes"])
        self.assertEqual(payload["comparison"]["fixed_violations"], 0)
        self.assertFalse(os.path.exists(os.path.join(self.bare, "README.md")))

    def test_summary_with_trend(self) -> None:
        request = {"module_paths": [self.bare, self.docs], "include_rules": ["README_EXISTS"]}
        first = self.client.post("/summary", json=request).json()

        second = self.client.post("/summary", json=dict(request, previous=first)).json()

        self.assertEqual(first["total_modules"], 2)
        self.assertEqual(first["average_score"], 50.0)
        self.assertEqual(second["trend"]["average_score_delta"], 0.0)
        self.assertEqual(second["trend"]["new_modules"], [])


if __name__ == "__main__":
    unittest.main()
