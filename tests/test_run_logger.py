from __future__ import annotations

import json

import pytest

from orchestrator.run_logger import PipelineLogger, RunLogger


class RecordingStore:
    def __init__(self, broken: bool = False) -> None:
        self.events: list[dict] = []
        self.broken = broken

    def add_stage_event(self, video_id, **kwargs):
        if self.broken:
            raise RuntimeError("database is locked")
        self.events.append({"video_id": video_id, **kwargs})


def test_manifest_survives_reopen(tmp_path):
    run_dir = tmp_path / "runs" / "vid-1"
    logger = RunLogger(str(run_dir))
    logger.save_step("assembly", {"steps": ["concat"]})
    logger.log("hello")

    reopened = RunLogger(str(run_dir))
    assert reopened.manifest["run_id"] == "vid-1"
    assert reopened.manifest["steps"]["assembly"] == {"steps": ["concat"]}
    assert "hello" in (run_dir / "run.log").read_text()


def test_stage_records_start_and_end(tmp_path):
    store = RecordingStore()
    plog = PipelineLogger("vid-1", run_logger=RunLogger(str(tmp_path)), store=store)
    with plog.stage("blueprint", 3):
        pass
    assert [e["event"] for e in store.events] == ["start", "end"]
    assert store.events[1]["stage_number"] == 3
    manifest = json.loads((tmp_path / "run_manifest.json").read_text())
    assert manifest["steps"]["stage_blueprint"]["last_event"] == "end"


def test_stage_error_is_recorded_and_reraised(tmp_path):
    store = RecordingStore()
    plog = PipelineLogger("vid-1", run_logger=RunLogger(str(tmp_path)), store=store)
    with pytest.raises(ValueError):
        with plog.stage("generating", 6):
            raise ValueError("boom")
    assert store.events[-1]["event"] == "error"
    assert store.events[-1]["error"] == "boom"


def test_broken_store_never_aborts_the_stage(tmp_path, capsys):
    plog = PipelineLogger("vid-1", store=RecordingStore(broken=True))
    with plog.stage("assembling", 7):
        ran = True
    assert ran
    assert "dropped log event" in capsys.readouterr().out
