from __future__ import annotations

import pytest

from mcp_servers.render.placement import plan_narration


def _seg(index: int, audio: float, start_time=None) -> dict:
    return {"segment_index": index, "audio_duration": audio, "start_time": start_time}


def test_segments_start_after_scene_silence():
    windows = plan_narration([_seg(0, 3.0), _seg(2, 3.0)], [0.0, 8.0, 16.0], 24.0)
    assert [(w.start_sec, w.end_sec) for w in windows] == [(2.0, 5.0), (18.0, 21.0)]
    assert windows[0].silence_offset == 2.0


def test_long_segment_pushes_the_next_one_back():
    windows = plan_narration([_seg(0, 10.0), _seg(1, 3.0)], [0.0, 8.0, 16.0], 120.0)
    assert windows[1].start_sec == pytest.approx(13.5)
    assert windows[1].start_sec - windows[0].end_sec >= 1.5


def test_tight_budget_shrinks_silences_instead_of_overlapping():
    windows = plan_narration([_seg(0, 7.0), _seg(1, 7.0)], [0.0, 8.0], 20.0)
    assert windows[0].start_sec == pytest.approx(1.5)
    assert windows[0].end_sec == pytest.approx(8.5)
    assert windows[1].start_sec == pytest.approx(10.0)
    assert windows[1].end_sec == pytest.approx(17.0)
    assert windows[1].audio_duration == 7.0


def test_audio_is_clipped_at_the_end_of_the_film():
    windows = plan_narration([_seg(0, 20.0)], [0.0], 10.0)
    assert windows[0].start_sec == pytest.approx(0.5)
    assert windows[0].end_sec == pytest.approx(10.0)
    assert windows[0].duration == pytest.approx(9.5)


def test_out_of_range_clip_falls_back_to_start_time():
    windows = plan_narration([_seg(5, 2.0, start_time=30.0)], [0.0], 60.0)
    assert windows[0].start_sec == pytest.approx(32.0)
    assert windows[0].to_dict()["segment_index"] == 5


def test_no_segments():
    assert plan_narration([], [0.0, 8.0], 16.0) == []
