"""
Tests for the debug, metrics and runtime config routes.
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import get_config
from routers import assistant_debug
from routers.assistant_orchestration import DebugStore, PipelineLogger, get_debug_store, reset_metrics


class DebugApiTestBase:
    def setup_method(self):
        reset_metrics()
        self.store = DebugStore(max_logs=5)
        app = FastAPI()
        app.include_router(assistant_debug.router)
        app.dependency_overrides[get_debug_store] = lambda: self.store
        self.client = TestClient(app)

    def teardown_method(self):
        get_config().reset_to_defaults()


class TestDebugLogs(DebugApiTestBase):
    def _trace(self, decision="silence"):
        log = self.store.create("m-1:e-1", {"notes": "hello"})
        log.add_agent_call("immediate", "sys", "user", "{}", {"has_actionable_advice": False}, 12.34)
        log.set_output(decision, [], "reason", 20.0)
        return log

    def test_list_newest_first(self):
        first = self._trace()
        second = self._trace("message")

        data = self.client.get("/api/assistant/debug").json()
        assert data["success"] is True
        assert data["count"] == 2
        assert data["total"] == 2
        assert [log["id"] for log in data["logs"]] == [second.id, first.id]
        assert data["logs"][0]["decision"] == "message"
        assert data["logs"][0]["agents"] == ["immediate"]

    def test_limit_is_clamped(self):
        for _ in range(3):
            self._trace()
        assert self.client.get("/api/assistant/debug", params={"limit": 0}).json()["count"] == 1
        assert self.client.get("/api/assistant/debug", params={"limit": 1000}).json()["count"] == 3

    def test_store_is_bounded(self):
        logs = [self._trace() for _ in range(7)]
        data = self.client.get("/api/assistant/debug").json()
        assert data["total"] == 5
        assert self.store.get(logs[0].id) is None

    def test_get_one(self):
        log = self._trace()
        data = self.client.get(f"/api/assistant/debug/{log.id}").json()
        assert data["log"]["input"] == {"notes": "hello"}
        call = data["log"]["agent_calls"][0]
        assert call["agent"] == "immediate"
        assert call["duration_ms"] == 12.3

    def test_get_missing(self):
        response = self.client.get("/api/assistant/debug/nope")
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND_DEBUG_LOG"
        assert body["error"]["source"] == "assistant_debug"

    def test_clear(self):
        self._trace()
        self._trace()
        assert self.client.delete("/api/assistant/debug").json()["cleared"] == 2
        assert len(self.store) == 0


class TestMetrics(DebugApiTestBase):
    def test_metrics_and_reset(self):
        plog = PipelineLogger("m-1:e-1")
        plog.agent_times["immediate"] = 10.0
        plog.finish("silence")

        metrics = self.client.get("/api/assistant/metrics").json()["metrics"]
        assert metrics["total_calls"] == 1
        assert metrics["silence_count"] == 1
        assert metrics["agent_avg_ms"]["immediate"] == 10.0

        reset = self.client.post("/api/assistant/metrics/reset").json()["metrics"]
        assert reset["total_calls"] == 0


class TestRuntimeConfig(DebugApiTestBase):
    def test_read_excludes_credentials(self):
        config = self.client.get("/api/assistant/config").json()["config"]
        assert "debounce_ms" in config
        assert "llm_api_key" not in config

    def test_update(self):
        data = self.client.put(
            "/api/assistant/config",
            json={"debounce_ms": 2500, "min_interval_ms": -5, "model_fast": "bad name!"},
        ).json()
        assert data["updated"] == ["debounce_ms"]
        assert sorted(data["ignored"]) == ["min_interval_ms", "model_fast"]
        assert get_config().debounce_ms == 2500

    def test_update_strips_strings(self):
        data = self.client.put("/api/assistant/config", json={"model_fast": "  small-model  "}).json()
        assert data["updated"] == ["model_fast"]
        assert get_config().model_fast == "small-model"

    def test_empty_update(self):
        data = self.client.put("/api/assistant/config", json={}).json()
        assert data["updated"] == []
        assert data["message"] == "No changes"

    def test_reset(self):
        default = get_config().debounce_ms
        self.client.put("/api/assistant/config", json={"debounce_ms": default + 1})
        changes = self.client.post("/api/assistant/config/reset").json()["changes"]
        assert changes["debounce_ms"] == {"old": default + 1, "new": default}
        assert get_config().debounce_ms == default
