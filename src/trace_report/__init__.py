"""Traceability report engine.

Reconciles test viewpoints, generated test cases, routes and execution
results into one deduplicated, traceable report with coverage metrics
and classified failures.
"""

__version__ = "1.0.0"
