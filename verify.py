import json
import sys

from scheduler import MultiQueueScheduler, SchedulerConfig, Task, compute_metrics, parse_task_type

TOLERANCE = 1e-6


def build_tasks(dataset):
    return [Task(item["value"], parse_task_type(item.get("type", "NORMAL"))) for item in dataset]


def apply_step(sched, step):
    op = step["op"]
    if op == "admit":
        for _ in range(int(step.get("count", 1))):
            sched.admit()
    elif op == "tick":
        for _ in range(int(step.get("count", 1))):
            sched.tick()
    elif op == "grow":
        sched.grow(parse_task_type(step["group"]))
    elif op == "shrink":
        sched.shrink(parse_task_type(step["group"]))
    elif op == "run":
        guard = 0
        max_steps = int(step.get("max_steps", 200000))
        while (not sched.idle()) and guard < max_steps:
            if sched.intake:
                sched.admit()
            sched.tick()
            guard += 1
    else:
        raise ValueError(f"unknown step {op!r}")


def _close(a, b):
    return abs(float(a) - float(b)) <= TOLERANCE


def run_test(test):
    settings = test.get("settings", {})
    sched = MultiQueueScheduler(SchedulerConfig.from_dict(settings), build_tasks(test.get("tasks", [])))

    for step in test.get("steps", []):
        apply_step(sched, step)

    snap = sched.snapshot()
    expected = test.get("expected", {})
    if not expected:
        return False, "no expected outputs"

    if "intake" in expected and len(snap["intake_queue"]) != int(expected["intake"]):
        return False, f"intake expected {expected['intake']} got {len(snap['intake_queue'])}"

    for group, names in expected.get("groups", {}).items():
        got = snap["groups"][parse_task_type(group)]
        if got != names:
            return False, f"group {group} expected {names} got {got}"

    for name, exp in expected.get("per_queue", {}).items():
        if name not in snap["per_queue"]:
            return False, f"missing queue {name}"
        row = snap["per_queue"][name]
        if "pending" in exp:
            got = row["pending"]
            if len(got) != len(exp["pending"]) or not all(_close(a, b) for a, b in zip(got, exp["pending"])):
                return False, f"{name} pending expected {exp['pending']} got {got}"
        for key in ["progress", "initial_duration", "completed"]:
            if key in exp and not _close(row[key], exp[key]):
                return False, f"{name} {key} expected {exp[key]} got {row[key]}"

    if "completed" in expected:
        _, summary = compute_metrics(sched)
        if summary["completed"] != int(expected["completed"]):
            return False, f"completed expected {expected['completed']} got {summary['completed']}"

    return True, "ok"


def main(path="tests/expected_outputs.json"):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    tests = data.get("tests", [])
    failed = 0
    for t in tests:
        ok, msg = run_test(t)
        name = t.get("name", "(unnamed)")
        if ok:
            print(f"PASS {name}")
        else:
            failed += 1
            print(f"FAIL {name}: {msg}")

    if failed:
        print(f"{failed} test(s) failed")
        sys.exit(1)

    print("All tests passed")


if __name__ == "__main__":
    main(*sys.argv[1:2])
