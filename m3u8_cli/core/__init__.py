"""
Core application engine for orchestrating the conversion queue.

The `QueueManager` owns the pending, in-progress and finished jobs and drives
each one through the conversion engine with bounded parallelism.
"""
