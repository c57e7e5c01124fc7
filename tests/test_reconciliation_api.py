import importlib
import sys
import unittest

from config import Config


def _workflows():
    return [
        {
            "id": "wf-box",
            "name": "Folding carton",
            "stages": [
                {"id": "print", "name": "Printing", "inputUOM": "sheets", "outputUOM": "sheets"},
                {"id": "die", "name": "Die Cutting", "inputUOM": "sheets", "outputUOM": "cartoon"},
            ],
        }
    ]


def _job(**overrides):
    job = {
        "id": "job-1",
        "code": "JC-0001",
        "quantity": 1000,
        "workflowId": "wf-box",
        "plannedStageIds": ["print", "die"],
        "currentStageId": "die",
        "productionSpecs": {"numberUp": 4},
    }
    job.update(overrides)
    return job


def _runs():
    return [
        {"id": "p1", "stageId": "print", "qtyGood": 600, "lot": "L1", "at": "2024-03-01T08:00:00Z"},
        {"id": "p2", "stageId": "print", "qtyGood": 300, "lot": "L2", "at": "2024-03-02T08:00:00Z"},
        {"id": "t1", "stageId": "die", "qtyGood": 900, "transferSourceRunIds": ["p1", "p2"]},
        {"id": "d1", "stageId": "die", "qtyGood": 2000, "lot": "L1", "at": "2024-03-03T08:00:00Z"},
    ]


class SmallPayloadConfig(Config):
    RECONCILIATION_MAX_RUNS = 2


class ReconciliationApiTestCase(unittest.TestCase):
    def setUp(self):
        if "app" in sys.modules:
            self.app_module = importlib.reload(sys.modules["app"])
        else:
            self.app_module = importlib.import_module("app")

        self.app = self.app_module.create_app()
        self.app.testing = True
        self.client = self.app.test_client()

    def tearDown(self):
        if "app" in sys.modules:
            del sys.modules["app"]

    def _payload(self, **extra):
        payload = {"job": _job(), "runs": _runs(), "workflows": _workflows()}
        payload.update(extra)
        return payload

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"ok": True})

    def test_tolerance_for_planned_quantity(self):
        response = self.client.get("/api/reconciliation/tolerance?planned=999")
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["lower"], 100)
        self.assertEqual(body["completion_threshold"], 899)
        self.assertEqual(body["completion_threshold_upper"], 1099)

    def test_tolerance_requires_numeric_plan(self):
        response = self.client.get("/api/reconciliation/tolerance?planned=lots")
        self.assertEqual(response.status_code, 400)
        self.assertIn("planned", response.get_json()["errors"])

    def test_convert_quantity(self):
        response = self.client.get(
            "/api/reconciliation/convert?qty=10&from=sheets&to=cartoon&multiplier=4"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["qty"], 40)

    def test_non_finite_numbers_are_rejected(self):
        for value in ("nan", "inf", "-inf"):
            response = self.client.get(f"/api/reconciliation/tolerance?planned={value}")
            self.assertEqual(response.status_code, 400)
            self.assertIn("planned", response.get_json()["errors"])

        response = self.client.get("/api/reconciliation/convert?qty=nan&from=sheets&to=cartoon")
        self.assertEqual(response.status_code, 400)
        self.assertIn("qty", response.get_json()["errors"])

        response = self.client.get(
            "/api/reconciliation/convert?qty=5&from=sheets&to=cartoon&multiplier=inf"
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("multiplier", response.get_json()["errors"])

    def test_numeric_run_labels_are_read_as_text(self):
        runs = [
            {"id": 101, "stageId": "print", "qtyGood": 600, "lot": 12345, "at": "2024-03-01T08:00:00Z"},
            {"id": 102, "stageId": "die", "qtyGood": 600, "transferSourceRunIds": [101]},
        ]

        response = self.client.post("/api/reconciliation/lots", json=self._payload(runs=runs))
        self.assertEqual(response.status_code, 200)
        lots = response.get_json()["lots"]
        self.assertEqual([(lot["lot"], lot["remaining_qty"]) for lot in lots], [("12345", 600)])

        response = self.client.post("/api/reconciliation/current-stage", json=self._payload(runs=runs))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["transferred_in"], 600)

    def test_classify_runs(self):
        response = self.client.post(
            "/api/reconciliation/runs/classify",
            json={"stage_id": "die", "runs": _runs()},
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual([run["id"] for run in body["production"]], ["d1"])
        self.assertEqual([run["id"] for run in body["transfer"]], ["t1"])
        self.assertTrue(body["snapshot"])

    def test_classify_requires_stage(self):
        response = self.client.post("/api/reconciliation/runs/classify", json={"runs": []})
        self.assertEqual(response.status_code, 400)
        self.assertIn("stage_id", response.get_json()["errors"])

    def test_stage_progress(self):
        response = self.client.post(
            "/api/reconciliation/stages/die/progress",
            json=self._payload(),
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["produced"], 2000)
        self.assertEqual(body["planned"], 4000)
        self.assertEqual(body["percentage"], 50)
        self.assertEqual(body["uom"], "cartoon")
        self.assertTrue(body["is_current"])

    def test_stage_progress_unknown_stage(self):
        response = self.client.post(
            "/api/reconciliation/stages/ghost/progress",
            json=self._payload(),
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["stage_id"], "ghost")

    def test_all_stage_progress(self):
        response = self.client.post("/api/reconciliation/stages/progress", json=self._payload())
        self.assertEqual(response.status_code, 200)
        stages = response.get_json()["stages"]
        self.assertEqual([stage["stage_id"] for stage in stages], ["print", "die"])

    def test_job_progress(self):
        response = self.client.post("/api/reconciliation/job-progress", json=self._payload())
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["produced"], 2000)
        self.assertEqual(body["uom"], "cartoon")

    def test_current_stage_summary(self):
        response = self.client.post("/api/reconciliation/current-stage", json=self._payload())
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["stage_id"], "die")
        self.assertEqual(body["previous_stage_id"], "print")
        self.assertEqual(body["transferred_in"], 900)
        self.assertEqual(body["transferred_in_output"], 3600)
        self.assertEqual(body["completion_threshold"], 3700)
        self.assertEqual(body["completion_threshold_upper"], 4300)
        self.assertEqual(body["tolerance"], {"lower": 300, "upper": 300})
        self.assertEqual(body["state"], "incomplete")

    def test_current_stage_missing_job(self):
        response = self.client.post("/api/reconciliation/current-stage", json={"runs": []})
        self.assertEqual(response.status_code, 400)
        self.assertIn("job", response.get_json()["errors"])

    def test_lots_are_listed_oldest_first(self):
        response = self.client.post("/api/reconciliation/lots", json=self._payload())
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["uom"], "sheets")
        self.assertEqual(
            [(lot["lot"], lot["remaining_qty"]) for lot in body["lots"]],
            [("L1", 100), ("L2", 300)],
        )

    def test_allocate_fifo(self):
        response = self.client.post(
            "/api/reconciliation/allocate",
            json=self._payload(needed_qty=250),
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["status"], "allocated")
        self.assertEqual(
            [(a["lot"], a["qty"]) for a in body["allocations"]],
            [("L1", 100), ("L2", 150)],
        )

    def test_allocate_shortage_is_not_an_error(self):
        with self.assertLogs(self.app.logger, level="INFO") as captured:
            response = self.client.post(
                "/api/reconciliation/allocate",
                json=self._payload(needed_qty=500),
            )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["status"], "shortage")
        self.assertEqual(body["shortage"], 100)
        self.assertEqual(body["allocations"], [])
        self.assertTrue(any("fifo_allocation_shortage" in line for line in captured.output))

    def test_allocate_rejects_negative_quantity(self):
        response = self.client.post(
            "/api/reconciliation/allocate",
            json=self._payload(needed_qty=-1),
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("needed_qty", response.get_json()["errors"])

    def test_output_check_allowed(self):
        snapshot = self.client.post(
            "/api/reconciliation/runs/classify",
            json={"stage_id": "die", "runs": _runs()},
        ).get_json()["snapshot"]

        response = self.client.post(
            "/api/reconciliation/output-check",
            json=self._payload(qty_good=250, qty_scrap=25, snapshot=snapshot),
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body["allowed"])
        self.assertIsNone(body["reason"])
        self.assertEqual(
            [(run["lot"], run["qty_good"], run["qty_scrap"]) for run in body["planned_runs"]],
            [("L1", 400, 40), ("L2", 600, 60)],
        )

    def test_output_check_blocked(self):
        response = self.client.post(
            "/api/reconciliation/output-check",
            json=self._payload(qty_good=500),
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertFalse(body["allowed"])
        self.assertEqual(body["reason"], "insufficient_transfer")
        self.assertEqual(body["shortage"], 100)

    def test_output_check_stale_snapshot(self):
        response = self.client.post(
            "/api/reconciliation/output-check",
            json=self._payload(qty_good=10, snapshot="outdated"),
        )
        self.assertEqual(response.status_code, 409)
        self.assertTrue(response.get_json()["snapshot"])

    def test_payload_limit(self):
        app = self.app_module.create_app(SmallPayloadConfig)
        client = app.test_client()
        response = client.post("/api/reconciliation/current-stage", json=self._payload())
        self.assertEqual(response.status_code, 400)
        self.assertIn("runs", response.get_json()["errors"])


if __name__ == "__main__":
    unittest.main()
