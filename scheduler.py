# ==============================
# Multi-Queue Task Scheduler
# Engine: admission routing, least-loaded queues, tick progress model,
# work stealing and dynamic queue groups
# ==============================

from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Tuple
import json
import logging
import random

logger = logging.getLogger(__name__)

# ------------------------------
# CONFIG (simulated time units)
# ------------------------------
TICK_UNITS = 40              # one driver step
DECREMENT = 0.4              # progress removed from every running head per tick
ADMISSION_PAUSE_UNITS = 500  # global freeze after each admission
GRACE_UNITS = 1000           # new queues sit out of work stealing this long
TASK_VALUE_MAX = 200         # generated values are in [0, TASK_VALUE_MAX)

HIGH = "HIGH"
NORMAL = "NORMAL"
GROUPS = (HIGH, NORMAL)

QUEUE_PREFIX = {HIGH: "high", NORMAL: "regular"}


@dataclass
class SchedulerConfig:
    tick_units: int = TICK_UNITS
    decrement: float = DECREMENT
    pause_units: int = ADMISSION_PAUSE_UNITS
    grace_units: int = GRACE_UNITS
    high_queues: int = 1
    normal_queues: int = 4

    def __post_init__(self):
        self.tick_units = max(1, int(self.tick_units))
        self.decrement = float(self.decrement)
        if self.decrement <= 0:
            raise ValueError(f"decrement must be positive, got {self.decrement}")
        self.pause_units = max(0, int(self.pause_units))
        self.grace_units = max(0, int(self.grace_units))
        # A group never has fewer than one queue.
        self.high_queues = max(1, int(self.high_queues))
        self.normal_queues = max(1, int(self.normal_queues))

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "SchedulerConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


# ------------------------------
# Data model
# ------------------------------
def parse_task_type(raw) -> str:
    t = str(raw).strip().upper()
    if t == "REGULAR":
        t = NORMAL
    if t not in GROUPS:
        raise ValueError(f"unknown task type {raw!r}")
    return t


@dataclass(frozen=True)
class Task:
    value: float
    type: str = NORMAL

    def __post_init__(self):
        if self.type not in GROUPS:
            raise ValueError(f"unknown task type {self.type!r}")
        if self.value < 0:
            raise ValueError(f"task value must be non-negative, got {self.value}")


@dataclass
class QueueState:
    """
    One worker queue.

    `pending[0]` is the head. Once initialized, the head is "in flight":
    `progress` holds its remaining duration and `initial_duration` the value
    it started from. `initial_duration == 0` means nothing is in flight.
    """

    name: str
    group: str
    pending: List[float] = field(default_factory=list)
    progress: float = 0
    initial_duration: float = 0
    grace_until: Optional[int] = None  # clock value; None once settled
    completed: int = 0

    def load(self) -> float:
        return sum(self.pending)

    def in_flight(self) -> bool:
        return self.initial_duration > 0

    def is_idle(self) -> bool:
        return not self.pending and self.progress == 0 and self.initial_duration == 0

    def outstanding(self) -> List[float]:
        """Work still owed by this queue, with the running head replaced by its remainder."""
        if self.in_flight():
            head = [self.progress] if self.progress > 0 else []
            return head + list(self.pending[1:])
        return list(self.pending)

    def progress_percent(self) -> float:
        if self.initial_duration <= 0:
            return 0.0
        return self.progress / self.initial_duration * 100.0


@dataclass(frozen=True)
class Completion:
    queue: str
    duration: float
    time: int


# ------------------------------
# Pure selection helpers
# ------------------------------
def take_last(seq: List[float]) -> Tuple[List[float], float]:
    return list(seq[:-1]), seq[-1]


def prepend_first(seq: List[float], value: float) -> List[float]:
    return [value] + list(seq)


def pick_least_loaded(names: List[str], queues: Dict[str, QueueState]) -> str:
    # Strict comparison keeps the earliest queue on ties.
    best = names[0]
    best_sum = queues[best].load()
    for name in names[1:]:
        s = queues[name].load()
        if s < best_sum:
            best, best_sum = name, s
    return best


def pick_most_loaded(names: List[str], queues: Dict[str, QueueState]) -> str:
    best = names[0]
    best_sum = queues[best].load()
    for name in names[1:]:
        s = queues[name].load()
        if s > best_sum:
            best, best_sum = name, s
    return best


# ------------------------------
# Multi-queue scheduler
# ------------------------------
class MultiQueueScheduler:
    """
    Two priority groups (HIGH, NORMAL) of FIFO queues fed from one intake queue.

    Every tick runs, in order:
      - expire_grace        (new queues become eligible for stealing)
      - decrement_progress  (skipped entirely while an admission pause is active)
      - detect_completions  (pop heads whose progress reached 0)
      - initialize_heads    (start the newly exposed head at its full value)
      - rebalance           (one steal per group from the busiest to an idle queue)

    Control operations (admit, grow, shrink, enqueue_task) mutate state
    between ticks; admit and shrink finish with their own rebalance pass.
    Nothing here is shared with another thread.
    """

    def __init__(self, config: Optional[SchedulerConfig] = None, tasks: Optional[List[Task]] = None):
        self.config = config or SchedulerConfig()
        self.reset(tasks)

    def reset(self, tasks: Optional[List[Task]] = None):
        self.time = 0    # ticks
        self.clock = 0   # simulated units
        self.pause_until = 0

        self.intake: List[Task] = list(tasks or [])
        self.queues: Dict[str, QueueState] = {}
        self.groups: Dict[str, List[str]] = {HIGH: [], NORMAL: []}
        self.completed: List[Completion] = []

        for _ in range(self.config.high_queues):
            self._create_queue(HIGH, grace=False)
        for _ in range(self.config.normal_queues):
            self._create_queue(NORMAL, grace=False)

    # -------- State access --------
    def queue(self, name: str) -> QueueState:
        q = self.queues.get(name)
        if q is None:
            raise AssertionError(f"no state for queue {name!r}")
        return q

    def ordered_names(self) -> List[str]:
        return self.groups[HIGH] + self.groups[NORMAL]

    @property
    def paused(self) -> bool:
        return self.clock < self.pause_until

    def in_grace(self, q: QueueState) -> bool:
        return q.grace_until is not None and self.clock < q.grace_until

    def idle(self) -> bool:
        return not self.intake and all(self.queue(n).is_idle() for n in self.ordered_names())

    # -------- Intake / admission --------
    def enqueue_task(self, task: Task):
        self.intake.append(task)

    def least_loaded(self, group: str) -> str:
        return pick_least_loaded(self.groups[group], self.queues)

    def admit(self) -> Optional[str]:
        """Move the intake head into its group's least-loaded queue. Returns the queue name."""
        if not self.intake:
            return None

        task = self.intake.pop(0)
        target = self.least_loaded(task.type)
        q = self.queue(target)
        q.pending = q.pending + [task.value]

        # One admission freezes every queue, not only the target. A pause
        # already running keeps its deadline.
        if not self.paused:
            self.pause_until = self.clock + self.config.pause_units
        logger.debug("admitted %s task %s -> %s", task.type, task.value, target)
        self.rebalance()
        return target

    # -------- Driver loop --------
    def tick(self):
        self.time += 1
        self.clock += self.config.tick_units

        self.expire_grace()
        self.decrement_progress()
        self.detect_completions()
        self.initialize_heads()
        self.rebalance()

    def expire_grace(self):
        for name in self.ordered_names():
            q = self.queue(name)
            if q.grace_until is not None and self.clock >= q.grace_until:
                q.grace_until = None

    def decrement_progress(self):
        if self.paused:
            return
        step = self.config.decrement
        for name in self.ordered_names():
            q = self.queue(name)
            if not q.pending or q.progress <= 0:
                q.progress = 0
            else:
                q.progress = max(0, round(q.progress - step, 2))

    def detect_completions(self):
        for name in self.ordered_names():
            q = self.queue(name)
            # initial_duration > 0: the head was started, not merely admitted.
            if q.pending and q.progress == 0 and q.initial_duration > 0:
                self._complete_head(q)
                q.initial_duration = 0

    def initialize_heads(self):
        for name in self.ordered_names():
            q = self.queue(name)
            while q.pending and q.progress == 0 and q.initial_duration == 0:
                head = q.pending[0]
                if head > 0:
                    q.progress = q.initial_duration = head
                    break
                # Zero-duration head: nothing to run, it finishes right here.
                self._complete_head(q)

    def rebalance(self):
        for group in GROUPS:
            self._steal(group)

    def _steal(self, group: str) -> Optional[Tuple[str, str, float]]:
        names = self.groups[group]
        idle = [n for n in names if self.queue(n).is_idle() and not self.in_grace(self.queue(n))]
        busy = [n for n in names if len(self.queue(n).pending) > 1 and not self.in_grace(self.queue(n))]
        if not idle or not busy:
            return None

        src = self.queue(pick_most_loaded(busy, self.queues))
        if len(src.pending) <= 1 or src.load() <= 0:
            return None

        dst = self.queue(idle[0])
        src.pending, value = take_last(src.pending)
        dst.pending = prepend_first(dst.pending, value)
        logger.debug("stole %s from %s -> %s", value, src.name, dst.name)
        return src.name, dst.name, value

    def _complete_head(self, q: QueueState):
        duration = q.pending[0]
        q.pending = q.pending[1:]
        q.completed += 1
        self.completed.append(Completion(q.name, duration, self.time))

    # -------- Group resizing --------
    def _create_queue(self, group: str, grace: bool = True) -> str:
        names = self.groups[group]
        n = len(names) + 1
        name = f"{QUEUE_PREFIX[group]}{n}"
        while name in self.queues:
            n += 1
            name = f"{QUEUE_PREFIX[group]}{n}"

        q = QueueState(name=name, group=group)
        if grace and self.config.grace_units > 0:
            q.grace_until = self.clock + self.config.grace_units
        self.queues[name] = q
        names.append(name)
        return name

    def grow(self, group: str) -> str:
        name = self._create_queue(group)
        logger.info("grew %s group: +%s (%d queues)", group, name, len(self.groups[group]))
        return name

    def shrink(self, group: str) -> Optional[str]:
        """Remove the last queue of `group`, handing its work to the least-loaded survivor."""
        names = self.groups[group]
        if len(names) <= 1:
            return None

        victim = self.queue(names[-1])
        remaining = names[:-1]

        moved = victim.outstanding()
        if moved:
            target = self.queue(pick_least_loaded(remaining, self.queues))
            target.pending = target.pending + moved
            logger.info("moved %d task(s) from %s -> %s", len(moved), victim.name, target.name)

        del self.queues[victim.name]
        self.groups[group] = remaining
        logger.info("shrank %s group: -%s (%d queues)", group, victim.name, len(remaining))
        self.rebalance()
        return victim.name

    # -------- Read-only view --------
    def snapshot(self) -> dict:
        per_queue = {}
        for name in self.ordered_names():
            q = self.queue(name)
            per_queue[name] = {
                "group": q.group,
                "pending": list(q.pending),
                "progress": q.progress,
                "initial_duration": q.initial_duration,
                "in_grace": self.in_grace(q),
                "completed": q.completed,
            }
        return {
            "time": self.time,
            "clock": self.clock,
            "paused": self.paused,
            "intake_queue": list(self.intake),
            "groups": {g: list(self.groups[g]) for g in GROUPS},
            "per_queue": per_queue,
        }


# ------------------------------
# Task source
# ------------------------------
def generate_task(mode: str = "random", rng: Optional[random.Random] = None) -> Task:
    rng = rng or random
    value = rng.randrange(TASK_VALUE_MAX)
    if mode == "random":
        task_type = HIGH if rng.random() < 0.5 else NORMAL
    else:
        task_type = parse_task_type(mode)
    return Task(value, task_type)


def load_preset(preset_id: int) -> List[Task]:
    if preset_id == 1:
        return [
            Task(120, HIGH),
            Task(40, NORMAL),
            Task(75, NORMAL),
            Task(30, HIGH),
            Task(150, NORMAL),
            Task(60, NORMAL),
        ]

    if preset_id == 2:
        # Normal-heavy burst: drives work stealing between regular queues
        return [Task(v, NORMAL) for v in (180, 20, 160, 35, 140, 50, 120, 65, 100, 80)]

    if preset_id == 3:
        return [
            Task(90, HIGH),
            Task(110, HIGH),
            Task(0, HIGH),
            Task(45, NORMAL),
            Task(199, HIGH),
            Task(10, NORMAL),
        ]

    return load_preset(1)


def load_tasks_json(path: str = "tasks.json") -> List[Task]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    tasks: List[Task] = []
    for item in data:
        value = float(item["value"])
        if value.is_integer():
            value = int(value)
        tasks.append(Task(value, parse_task_type(item.get("type", NORMAL))))
    return tasks


# ------------------------------
# Metrics
# ------------------------------
def compute_metrics(scheduler: MultiQueueScheduler):
    """Return per-queue rows and a summary dict."""
    rows = []
    group_load = {g: 0.0 for g in GROUPS}

    for name in scheduler.ordered_names():
        q = scheduler.queue(name)
        load = q.load()
        group_load[q.group] += load
        rows.append({
            "Queue": name,
            "Group": q.group,
            "Pending": len(q.pending),
            "Load": load,
            "Progress": q.progress,
            "Pct": q.progress_percent(),
            "Done": q.completed,
            "Grace": scheduler.in_grace(q),
        })

    summary = {
        "intake": len(scheduler.intake),
        "completed": len(scheduler.completed),
        "completed_work": sum(c.duration for c in scheduler.completed),
        "load": group_load,
        "time": scheduler.time,
        "clock": scheduler.clock,
    }
    return rows, summary
