import random

import pytest

from pushup_tracker.counter.pipeline import (
    Phase,
    RepConfig,
    RepState,
    RepStateMachine,
    initial_state,
    transition,
)

TRACE = [180, 178, 95, 94, 96, 95, 98, 170, 175]


def run(machine, angles, start=0.0, dt=0.1):
    """Feed angles every ``dt`` seconds; None means an untrackable frame."""
    t = start
    for a in angles:
        machine.step(a, a is not None, t)
        t += dt
    return t


@pytest.fixture
def machine():
    m = RepStateMachine(RepConfig(setup_ms=0))
    m.start(0.0)
    m.step(None, False, 0.0)  # leave setup
    assert m.phase is Phase.WAITING
    return m


def waiting(count=0):
    return RepState(phase=Phase.WAITING, count=count)


# ---- configuration ----

@pytest.mark.parametrize("kwargs", [
    {"down_enter": -1},
    {"up_enter": 181},
    {"down_exit": 200},
    {"min_hold_ms": -1},
    {"setup_ms": -5},
    {"down_enter": 126, "down_exit": 125},
    {"up_exit": 135},
    {"visibility_threshold": 1.5},
    {"min_upper_visible": 0},
    {"side_switch_margin": -0.1},
])
def test_invalid_config_is_rejected(kwargs):
    with pytest.raises(ValueError):
        RepConfig(**kwargs)


def test_default_config():
    cfg = RepConfig()
    assert (cfg.down_enter, cfg.down_exit, cfg.up_enter, cfg.up_exit) == (120, 125, 130, 125)
    assert cfg.min_hold_ms == 300
    assert cfg.setup_ms == 5000


# ---- pure transition function ----

def test_setup_ends_on_wall_clock_even_without_frames():
    cfg = RepConfig()
    state = initial_state(10.0)
    step = transition(cfg, state, None, False, 14.9)
    assert step.state.phase is Phase.SETUP
    assert not step.clock_started
    step = transition(cfg, state, None, False, 15.0)
    assert step.state.phase is Phase.WAITING
    assert step.clock_started


def test_full_excursion_counts_once():
    cfg = RepConfig()
    s = transition(cfg, waiting(), 119.0, True, 0.0).state
    assert s.phase is Phase.DOWN and s.down_started == 0.0
    s = transition(cfg, s, 124.0, True, 0.2).state
    assert s.phase is Phase.DOWN
    s = transition(cfg, s, 124.0, True, 0.3).state
    assert s.phase is Phase.HOLDING
    s = transition(cfg, s, 129.9, True, 0.4).state
    assert s.phase is Phase.HOLDING
    step = transition(cfg, s, 130.0, True, 0.5)
    assert step.rep_completed
    assert step.state.phase is Phase.UP
    assert step.state.count == 1


def test_bounce_before_hold_reverts_to_waiting():
    cfg = RepConfig()
    s = transition(cfg, waiting(), 118.0, True, 0.0).state
    step = transition(cfg, s, 125.5, True, 0.2)
    assert step.state.phase is Phase.WAITING
    assert step.state.count == 0
    assert not step.rep_completed


def test_hysteresis_band_keeps_down():
    cfg = RepConfig()
    s = transition(cfg, waiting(), 120.0, True, 0.0).state
    s = transition(cfg, s, 125.0, True, 0.1).state
    assert s.phase is Phase.DOWN


def test_waiting_never_jumps_to_holding_or_up():
    cfg = RepConfig()
    step = transition(cfg, waiting(), 60.0, True, 100.0)
    assert step.state.phase is Phase.DOWN
    step = transition(cfg, waiting(), 170.0, True, 100.0)
    assert step.state.phase is Phase.WAITING


def test_down_does_not_count_on_fast_rise():
    cfg = RepConfig()
    s = transition(cfg, waiting(), 100.0, True, 0.0).state
    step = transition(cfg, s, 170.0, True, 1.0)
    assert step.state.phase is Phase.WAITING
    assert step.state.count == 0


def test_untrackable_frame_freezes_every_phase():
    cfg = RepConfig()
    for phase in (Phase.WAITING, Phase.DOWN, Phase.HOLDING, Phase.UP):
        state = RepState(phase=phase, count=3, down_started=0.0)
        step = transition(cfg, state, None, False, 5.0)
        assert step.state.phase is phase
        assert step.state.count == 3


# ---- state machine scenarios ----

def test_reference_trace_counts_one(machine):
    run(machine, TRACE, start=0.1)
    assert machine.count == 1
    assert machine.phase is Phase.UP


def test_reference_trace_twice_counts_two(machine):
    run(machine, TRACE + TRACE, start=0.1)
    assert machine.count == 2


def test_no_count_during_setup():
    m = RepStateMachine(RepConfig())
    m.start(0.0)
    run(m, TRACE * 3, start=0.1)
    assert m.phase is Phase.SETUP
    assert m.count == 0


def test_setup_then_reps():
    m = RepStateMachine(RepConfig(setup_ms=1000))
    m.start(0.0)
    t = run(m, TRACE, start=0.0)
    assert m.count == 0
    m.tick(t + 1.0)
    assert m.phase is Phase.WAITING
    run(m, TRACE, start=t + 1.1)
    assert m.count == 1


def test_short_dip_is_rejected(machine):
    run(machine, [180, 110, 118, 140, 170], start=0.1)
    assert machine.count == 0
    assert machine.phase is Phase.WAITING


def test_untrackable_frames_during_dwell_do_not_reset_hold(machine):
    run(machine, [100, None, None, 100], start=1.0)
    assert machine.phase is Phase.DOWN
    # the 0.2 s gap is not counted towards the hold
    run(machine, [100], start=1.4)
    assert machine.phase is Phase.DOWN
    run(machine, [100], start=1.5)
    assert machine.phase is Phase.HOLDING
    run(machine, [150], start=1.6)
    assert machine.count == 1


def test_untrackable_frames_during_hold_keep_holding(machine):
    run(machine, [100, 100, 100, 100], start=1.0)
    assert machine.phase is Phase.HOLDING
    run(machine, [None] * 20, start=1.4)
    assert machine.phase is Phase.HOLDING
    run(machine, [140], start=3.4)
    assert machine.count == 1


def test_tick_does_not_pause_dwell(machine):
    machine.step(100, True, 1.0)
    machine.tick(1.1)
    machine.tick(1.2)
    machine.step(100, True, 1.3)
    assert machine.phase is Phase.HOLDING


def test_bounce_at_top_does_not_double_count(machine):
    run(machine, [100, 100, 100, 100, 140, 127, 140, 128, 150], start=1.0)
    assert machine.count == 1
    run(machine, [124, 140, 150], start=2.0)
    assert machine.count == 1
    assert machine.phase is Phase.WAITING


def test_random_sequences_respect_invariants():
    rng = random.Random(1234)
    allowed = {
        (Phase.SETUP, Phase.WAITING),
        (Phase.WAITING, Phase.DOWN),
        (Phase.DOWN, Phase.WAITING),
        (Phase.DOWN, Phase.HOLDING),
        (Phase.HOLDING, Phase.UP),
        (Phase.UP, Phase.WAITING),
    }
    for _ in range(50):
        m = RepStateMachine(RepConfig(setup_ms=200))
        m.start(0.0)
        t = 0.0
        for _ in range(300):
            t += rng.uniform(0.01, 0.2)
            trackable = rng.random() > 0.2
            angle = rng.uniform(60.0, 180.0) if trackable else None
            before_phase, before_count = m.phase, m.count
            step = m.step(angle, trackable, t)
            after = step.state
            assert after.count >= before_count
            if after.phase is not before_phase:
                assert (before_phase, after.phase) in allowed
            if after.count != before_count:
                assert after.count == before_count + 1
                assert (before_phase, after.phase) == (Phase.HOLDING, Phase.UP)
                assert step.rep_completed


def test_debug_callback_traces_phase_changes():
    traces = []
    m = RepStateMachine(RepConfig(setup_ms=0), debug_cb=traces.append)
    m.start(0.0)
    m.step(100, True, 0.0)
    msgs = [t["msg"] for t in traces]
    assert msgs == ["state→setup", "state→waiting"]


def test_step_before_start_raises():
    with pytest.raises(RuntimeError):
        RepStateMachine().step(100, True, 0.0)
