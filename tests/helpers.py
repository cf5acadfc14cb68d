# tests/helpers.py


def put(sched, name, pending, progress=0, initial_duration=0):
    """Force a queue into a given state."""
    q = sched.queue(name)
    q.pending = list(pending)
    q.progress = progress
    q.initial_duration = initial_duration
    return q
