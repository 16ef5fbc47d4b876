import sys
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from drought_pipeline.api import pipeline as pipeline_api
from drought_pipeline.jobs.orchestrator import RunSummary
import main
from main import app


class TestPipelineAPI(unittest.TestCase):

    def setUp(self):
        self.client = TestClient(app)
        pipeline_api.pipeline_state.update({
            "is_running": False, "stage": None,
            "last_run_status": "unknown", "last_run_time": None, "runs": [],
        })

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "active")

    def test_trigger_runs_stage_in_background(self):
        summary = RunSummary(pipeline="flow_rate")
        with patch.object(pipeline_api, "pipeline_runner", return_value=[summary]) as runner:
            response = self.client.post("/pipeline/trigger", params={"stage": "reconstruct"})

        self.assertEqual(response.status_code, 200)
        runner.assert_called_once_with("reconstruct")
        status = self.client.get("/pipeline/status").json()
        self.assertEqual(status["last_run_status"], "success")
        self.assertEqual(status["runs"][0]["pipeline"], "flow_rate")
        self.assertFalse(status["is_running"])

    def test_aborted_run_reported_as_partial(self):
        summary = RunSummary(pipeline="area_rainfall", aborted=True, abort_reason="no weights")
        with patch.object(pipeline_api, "pipeline_runner", return_value=[summary]):
            self.client.post("/pipeline/trigger")
        self.assertEqual(self.client.get("/pipeline/status").json()["last_run_status"], "partial")

    def test_runner_crash_reported_as_failed(self):
        with patch.object(pipeline_api, "pipeline_runner", side_effect=RuntimeError("boom")):
            self.client.post("/pipeline/trigger", params={"stage": "collect"})
        self.assertEqual(self.client.get("/pipeline/status").json()["last_run_status"], "failed")

    def test_trigger_rejected_while_running(self):
        pipeline_api.pipeline_state["is_running"] = True
        response = self.client.post("/pipeline/trigger")
        self.assertEqual(response.status_code, 409)

    def test_unknown_stage_rejected(self):
        response = self.client.post("/pipeline/trigger", params={"stage": "train"})
        self.assertEqual(response.status_code, 400)


class TestServeCommand(unittest.TestCase):

    def test_serve_runs_app_under_uvicorn(self):
        with patch.object(sys, "argv", ["main.py", "serve"]), patch("uvicorn.run") as run:
            main.main()
        run.assert_called_once_with(app, host="0.0.0.0", port=8300)


if __name__ == '__main__':
    unittest.main()
