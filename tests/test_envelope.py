from __future__ import annotations

import pytest

from mcp_servers.render.envelope import (
    MUSIC_DUCK_VOLUME,
    MUSIC_SILENCE_VOLUME,
    MUSIC_VAST_VOLUME,
    Envelope,
    EnvelopeRule,
    Product,
    beat_volume_envelope,
    dip_to_black_envelope,
    narration_duck_envelope,
    return_fade_multiplier,
)


def test_rule_ramps_linearly():
    rule = EnvelopeRule(10.0, 12.0, 1.0, 0.0)
    assert rule.value_at(11.0) == pytest.approx(0.5)
    assert rule.value_expression("t") == "1+(-1)*(t-10)/2"
    assert rule.condition("T") == "between(T,10,12)"


def test_open_ended_rule():
    rule = EnvelopeRule(5.0, None, 0.0, 0.0)
    assert rule.contains(500.0)
    assert not rule.contains(4.9)
    assert rule.condition("t") == "gte(t,5)"


def test_first_matching_rule_wins():
    env = Envelope(rules=[EnvelopeRule(0, 10, 0.2, 0.2), EnvelopeRule(5, 20, 0.9, 0.9)], default=1.0)
    assert env.value_at(7) == 0.2
    assert env.value_at(15) == 0.9
    assert env.value_at(25) == 1.0
    assert env.compile_expression() == "if(between(t,0,10),0.2,if(between(t,5,20),0.9,1))"


def test_dip_to_black_around_boundaries():
    env = dip_to_black_envelope([24.0, 64.0])
    assert env.value_at(24.0) == 0.0
    assert env.value_at(23.85) == pytest.approx(1.0)
    assert env.value_at(24.075) == pytest.approx(0.5)
    assert env.value_at(40.0) == 1.0
    assert env.value_at(64.15) == pytest.approx(1.0)


def test_narration_ducking():
    env = narration_duck_envelope([{"start_sec": 2.0, "end_sec": 6.0}])
    assert env.value_at(0.0) == MUSIC_SILENCE_VOLUME
    assert env.value_at(1.75) == pytest.approx((MUSIC_SILENCE_VOLUME + MUSIC_DUCK_VOLUME) / 2)
    assert env.value_at(4.0) == MUSIC_DUCK_VOLUME
    assert env.value_at(10.0) == MUSIC_SILENCE_VOLUME


def test_return_fade_reaches_silence_and_stays_there():
    fade = return_fade_multiplier(96.0, 120.0)
    assert fade.value_at(90.0) == 1.0
    assert fade.value_at(110.0) == pytest.approx(0.5)
    assert fade.value_at(120.0) == 0.0
    assert fade.value_at(130.0) == 0.0
    assert return_fade_multiplier(10.0, 10.0) is None


def test_short_return_act_fades_over_its_whole_length():
    fade = return_fade_multiplier(100.0, 110.0)
    assert fade.value_at(105.0) == pytest.approx(0.5)


def test_product_multiplies_and_compiles():
    duck = narration_duck_envelope([{"start_sec": 100.0, "end_sec": 105.0}])
    fade = return_fade_multiplier(96.0, 120.0)
    product = Product([duck, fade])
    assert product.value_at(110.0) == pytest.approx(MUSIC_SILENCE_VOLUME * 0.5)
    expr = product.compile_expression()
    assert expr.startswith("(if(")
    assert ")*(if(" in expr
    assert Product([]).compile_expression() == "1"


def test_beat_volume_table():
    beats = [
        {"act_index": 0, "beat_type": "narrated"},
        {"act_index": 1, "beat_type": "breathing"},
        {"act_index": 1, "beat_type": "narrated"},
    ]
    env = beat_volume_envelope(beats, [0.0, 8.0, 16.0], [8.0, 8.0, 8.0], {0: "vast", 1: "living_dot"})
    assert env.value_at(4.0) == MUSIC_VAST_VOLUME
    assert env.value_at(12.0) == pytest.approx(0.10)
    assert env.value_at(20.0) == MUSIC_DUCK_VOLUME
