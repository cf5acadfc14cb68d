# tests/test_scheduler.py

import logging
import random

import pytest

from scheduler import (
    HIGH,
    NORMAL,
    Completion,
    MultiQueueScheduler,
    SchedulerConfig,
    Task,
    generate_task,
    pick_least_loaded,
    prepend_first,
    take_last,
)

from helpers import put


# ------------------------------
# Admission + least-loaded routing
# ------------------------------
def test_admit_routes_high_task_to_high_group() -> None:
    sched = MultiQueueScheduler(tasks=[Task(120, HIGH)])

    assert sched.admit() == "high1"
    assert sched.queue("high1").pending == [120]
    assert sched.intake == []
    assert all(sched.queue(n).pending == [] for n in sched.groups[NORMAL])


def test_admit_on_empty_intake_is_noop(make_scheduler) -> None:
    sched = make_scheduler(pause_units=500)
    before = sched.snapshot()

    assert sched.admit() is None
    assert sched.snapshot() == before
    assert not sched.paused


def test_equal_loads_go_to_earlier_queue_then_least_loaded(make_scheduler) -> None:
    sched = make_scheduler([Task(10, HIGH), Task(50, HIGH)], high_queues=2)

    assert sched.admit() == "high1"
    assert sched.admit() == "high2"
    assert sched.queue("high1").pending == [10]
    assert sched.queue("high2").pending == [50]


def test_least_loaded_is_pure_and_breaks_ties_by_group_order(make_scheduler) -> None:
    sched = make_scheduler()
    put(sched, "regular1", [5, 6])
    put(sched, "regular2", [10])
    put(sched, "regular3", [4, 6])
    put(sched, "regular4", [20])
    before = sched.snapshot()

    assert sched.least_loaded(NORMAL) == "regular2"
    assert sched.snapshot() == before


def test_pick_least_loaded_on_all_equal_returns_first(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=3)
    for name in sched.groups[NORMAL]:
        put(sched, name, [7])

    assert pick_least_loaded(sched.groups[NORMAL], sched.queues) == "regular1"


# ------------------------------
# Progress clock + admission pause
# ------------------------------
def test_head_completes_after_value_over_decrement_ticks(make_scheduler) -> None:
    sched = make_scheduler([Task(40, NORMAL)], normal_queues=1)
    sched.admit()
    sched.tick()  # initializes the head

    q = sched.queue("regular1")
    assert q.progress == 40
    assert q.initial_duration == 40

    for _ in range(99):
        sched.tick()
    assert q.progress == pytest.approx(0.4)
    assert q.pending == [40]

    sched.tick()
    assert q.pending == []
    assert q.progress == 0
    assert q.initial_duration == 0
    assert sched.completed == [Completion("regular1", 40, 101)]


def test_admission_pause_freezes_every_queue(make_scheduler) -> None:
    sched = make_scheduler([Task(40, NORMAL)], normal_queues=2, pause_units=500)
    other = put(sched, "regular2", [10], progress=10, initial_duration=10)

    assert sched.admit() == "regular1"
    assert sched.paused

    # 12 ticks of 40 units stay inside the 500-unit window.
    for _ in range(12):
        sched.tick()
    assert sched.paused
    assert other.progress == 10
    # Initialization still runs while decrementing is frozen.
    assert sched.queue("regular1").progress == 40

    sched.tick()
    assert not sched.paused
    assert other.progress == pytest.approx(9.6)
    assert sched.queue("regular1").progress == pytest.approx(39.6)


def test_admission_during_pause_keeps_original_deadline(make_scheduler) -> None:
    sched = make_scheduler([Task(40, NORMAL), Task(80, NORMAL)], normal_queues=2, pause_units=500)

    assert sched.admit() == "regular1"
    for _ in range(5):
        sched.tick()
    assert sched.clock == 200

    # Second admission lands inside the running window and must not extend it.
    assert sched.admit() == "regular2"
    assert sched.pause_until == 500

    for _ in range(8):
        sched.tick()
    assert sched.clock == 520
    assert not sched.paused
    assert sched.queue("regular1").progress == pytest.approx(39.6)
    assert sched.queue("regular2").progress == pytest.approx(79.6)


def test_single_completion_per_zero_crossing(make_scheduler) -> None:
    sched = make_scheduler([Task(1, NORMAL), Task(2, NORMAL)], normal_queues=1)
    sched.admit()
    sched.admit()

    for _ in range(4):
        sched.tick()

    q = sched.queue("regular1")
    assert [c.duration for c in sched.completed] == [1]
    assert q.pending == [2]
    # The next head starts in the same pass.
    assert q.progress == 2
    assert q.initial_duration == 2


def test_fifo_order_within_a_queue(make_scheduler) -> None:
    sched = make_scheduler([Task(5, NORMAL), Task(3, NORMAL), Task(7, NORMAL)], normal_queues=1)
    for _ in range(3):
        sched.admit()

    guard = 0
    while not sched.idle() and guard < 10000:
        sched.tick()
        guard += 1

    assert [c.duration for c in sched.completed] == [5, 3, 7]
    assert all(c.queue == "regular1" for c in sched.completed)


def test_zero_duration_task_completes_on_next_pass(make_scheduler) -> None:
    sched = make_scheduler([Task(0, NORMAL), Task(15, NORMAL)], normal_queues=1)
    sched.admit()
    sched.admit()
    assert sched.queue("regular1").pending == [0, 15]

    sched.tick()

    q = sched.queue("regular1")
    assert [c.duration for c in sched.completed] == [0]
    assert q.pending == [15]
    assert q.progress == 15


def test_progress_stays_bounded_under_random_workload() -> None:
    rng = random.Random(7)
    sched = MultiQueueScheduler(SchedulerConfig(pause_units=80, grace_units=200))

    for _ in range(3000):
        roll = rng.random()
        if roll < 0.05:
            sched.enqueue_task(generate_task("random", rng))
        elif roll < 0.09:
            sched.admit()
        elif roll < 0.1:
            sched.grow(rng.choice([HIGH, NORMAL]))
        elif roll < 0.11:
            sched.shrink(rng.choice([HIGH, NORMAL]))
        sched.tick()

        for group in (HIGH, NORMAL):
            assert len(sched.groups[group]) >= 1
        for name in sched.ordered_names():
            q = sched.queue(name)
            assert 0 <= q.progress <= q.initial_duration
            # A head in flight is always still queued.
            assert q.initial_duration == 0 or q.pending


# ------------------------------
# Work stealing
# ------------------------------
def test_idle_queue_takes_tail_of_busy_queue(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=2, grace_units=0)
    put(sched, "regular2", [30, 40, 50], progress=30, initial_duration=30)

    sched.rebalance()

    assert sched.queue("regular1").pending == [50]
    assert sched.queue("regular2").pending == [30, 40]


def test_steal_from_busiest_into_first_idle_once_per_pass(make_scheduler) -> None:
    sched = make_scheduler()
    put(sched, "regular2", [10, 10], progress=10, initial_duration=10)
    put(sched, "regular3", [5, 40], progress=5, initial_duration=5)

    sched.rebalance()

    assert sched.queue("regular1").pending == [40]
    assert sched.queue("regular2").pending == [10, 10]
    assert sched.queue("regular3").pending == [5]
    assert sched.queue("regular4").pending == []


def test_steal_never_takes_a_sole_task(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=2)
    put(sched, "regular2", [100], progress=100, initial_duration=100)

    sched.rebalance()

    assert sched.queue("regular1").pending == []
    assert sched.queue("regular2").pending == [100]


def test_steal_skips_zero_load(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=2)
    put(sched, "regular2", [0, 0])

    sched.rebalance()

    assert sched.queue("regular1").pending == []
    assert sched.queue("regular2").pending == [0, 0]


def test_groups_never_steal_from_each_other(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=1)
    put(sched, "regular1", [10, 20, 30], progress=10, initial_duration=10)

    sched.rebalance()

    assert sched.queue("high1").pending == []
    assert sched.queue("regular1").pending == [10, 20, 30]


def test_new_queue_sits_out_stealing_until_grace_expires(make_scheduler) -> None:
    sched = make_scheduler([Task(v, NORMAL) for v in (30, 40, 50)], normal_queues=1, grace_units=1000)
    for _ in range(3):
        sched.admit()
    name = sched.grow(NORMAL)

    for _ in range(24):
        sched.tick()
        assert sched.queue(name).pending == []
    assert sched.in_grace(sched.queue(name))

    sched.tick()  # clock reaches 1000
    assert sched.queue(name).grace_until is None
    assert sched.queue(name).pending == [50]
    assert sched.queue("regular1").pending == [30, 40]


def test_queue_in_grace_is_not_stolen_from(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=1)
    name = sched.grow(NORMAL)
    put(sched, name, [10, 20, 30])

    sched.rebalance()

    assert sched.queue("regular1").pending == []
    assert sched.queue(name).pending == [10, 20, 30]


def test_take_last_and_prepend_first_do_not_mutate_input() -> None:
    seq = [1, 2, 3]
    rest, value = take_last(seq)
    assert (rest, value) == ([1, 2], 3)
    assert prepend_first(rest, value) == [3, 1, 2]
    assert seq == [1, 2, 3]


# ------------------------------
# Group resizing
# ------------------------------
def test_grow_follows_naming_scheme() -> None:
    sched = MultiQueueScheduler()

    assert sched.grow(HIGH) == "high2"
    assert sched.grow(NORMAL) == "regular5"
    assert sched.groups[HIGH] == ["high1", "high2"]
    q = sched.queue("high2")
    assert q.pending == [] and q.progress == 0 and q.initial_duration == 0
    assert sched.in_grace(q)


def test_shrink_hands_remainder_then_waiting_tasks_to_survivor(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=2)
    put(sched, "regular2", [15, 10, 20], progress=5, initial_duration=15)

    assert sched.shrink(NORMAL) == "regular2"

    assert sched.queue("regular1").pending == [5, 10, 20]
    assert "regular2" not in sched.queues
    assert sched.groups[NORMAL] == ["regular1"]


def test_shrink_targets_least_loaded_survivor_and_conserves_work(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=3)
    put(sched, "regular1", [50], progress=50, initial_duration=50)
    put(sched, "regular2", [5], progress=5, initial_duration=5)
    put(sched, "regular3", [30, 10], progress=12, initial_duration=30)
    owed = sum(sum(sched.queue(n).outstanding()) for n in sched.groups[NORMAL])

    sched.shrink(NORMAL)

    assert sched.queue("regular2").pending == [5, 12, 10]
    assert sched.queue("regular1").pending == [50]
    assert sum(sum(sched.queue(n).outstanding()) for n in sched.groups[NORMAL]) == owed


def test_shrink_moves_uninitialized_head_whole(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=2)
    put(sched, "regular2", [25])

    sched.shrink(NORMAL)

    assert sched.queue("regular1").pending == [25]


def test_shrink_of_idle_queue_moves_nothing(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=2)

    assert sched.shrink(NORMAL) == "regular2"
    assert sched.queue("regular1").pending == []
    assert sched.groups[NORMAL] == ["regular1"]


def test_admit_rebalances_without_waiting_for_a_tick(make_scheduler) -> None:
    sched = make_scheduler([Task(5, HIGH)], normal_queues=2)
    put(sched, "regular1", [10, 20, 30], progress=10, initial_duration=10)

    assert sched.admit() == "high1"
    assert sched.time == 0
    assert sched.queue("regular1").pending == [10, 20]
    assert sched.queue("regular2").pending == [30]


def test_shrink_rebalances_survivors_immediately(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=3)
    put(sched, "regular1", [10, 20, 30], progress=10, initial_duration=10)

    assert sched.shrink(NORMAL) == "regular3"
    assert sched.groups[NORMAL] == ["regular1", "regular2"]
    assert sched.queue("regular1").pending == [10, 20]
    assert sched.queue("regular2").pending == [30]


def test_shrink_keeps_last_queue() -> None:
    sched = MultiQueueScheduler()
    before = sched.snapshot()

    assert sched.shrink(HIGH) is None
    assert sched.snapshot() == before


def test_shrink_drops_grace_state_and_name_is_reused(make_scheduler) -> None:
    sched = make_scheduler(normal_queues=1)
    name = sched.grow(NORMAL)
    sched.shrink(NORMAL)

    assert name not in sched.queues
    assert sched.grow(NORMAL) == name
    assert sched.in_grace(sched.queue(name))


# ------------------------------
# State access / snapshot / config
# ------------------------------
def test_missing_queue_is_an_invariant_violation() -> None:
    sched = MultiQueueScheduler()
    with pytest.raises(AssertionError):
        sched.queue("nope")


def test_snapshot_is_ordered_and_detached() -> None:
    sched = MultiQueueScheduler(tasks=[Task(9, NORMAL)])
    snap = sched.snapshot()

    assert list(snap["per_queue"]) == ["high1", "regular1", "regular2", "regular3", "regular4"]
    assert snap["intake_queue"] == [Task(9, NORMAL)]
    assert snap["per_queue"]["regular1"]["group"] == NORMAL

    snap["per_queue"]["regular1"]["pending"].append(1)
    snap["intake_queue"].clear()
    assert sched.queue("regular1").pending == []
    assert len(sched.intake) == 1


def test_config_from_dict_ignores_unknown_keys_and_clamps() -> None:
    cfg = SchedulerConfig.from_dict({"high_queues": 0, "normal_queues": 2, "colour": "red", "pause_units": -5})

    assert cfg.high_queues == 1
    assert cfg.normal_queues == 2
    assert cfg.pause_units == 0


def test_config_rejects_non_positive_decrement() -> None:
    with pytest.raises(ValueError):
        SchedulerConfig(decrement=0)


def test_task_validation() -> None:
    with pytest.raises(ValueError):
        Task(-1, NORMAL)
    with pytest.raises(ValueError):
        Task(5, "urgent")


def test_resize_operations_are_logged(make_scheduler, caplog) -> None:
    caplog.set_level(logging.INFO, logger="scheduler")
    sched = make_scheduler(normal_queues=1)

    sched.grow(NORMAL)
    sched.shrink(NORMAL)

    assert "grew NORMAL group" in caplog.text
    assert "shrank NORMAL group" in caplog.text
