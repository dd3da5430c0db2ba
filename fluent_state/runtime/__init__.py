"""
Runtime package: transition execution, auto-transition scheduling and monitoring.

Architecture:
- The executor runs the ordered lifecycle of a transition attempt
- The scheduler decides when auto-transition conditions are re-checked
- Timers are owned per key and always cancellable
- The monitor is the boundary for logs, metrics and attempt records
"""
