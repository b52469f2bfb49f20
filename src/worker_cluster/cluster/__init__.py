"""Queue-driven worker process supervisor.

The coordinator is single threaded: every lifecycle signal from the host
process manager (fork, online, message, exit) is turned into an event and
handled in order by ``LifecycleRouter``. Spawn decisions therefore never
race, which is what keeps ``running_count <= worker_limit`` without locks.
Workers share nothing with the coordinator except the environment snapshot
passed at spawn time and a one-way message pipe.
"""
