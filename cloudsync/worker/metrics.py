"""Prometheus metrics exported by the sync worker."""

# flake8: noqa: E501


from prometheus_client import Counter, Gauge, Histogram

task_executions = Counter(
    "cloudsync_task_executions_total",
    "Total number of sync task executions",
    ["task_type", "status"],
)
task_duration = Histogram(
    "cloudsync_task_duration_seconds",
    "Sync task execution duration",
    ["task_type"],
)
assets_reconciled = Counter(
    "cloudsync_assets_reconciled_total",
    "Total number of asset records upserted by reconciliation",
    ["provider", "kind"],
)
propagation_tasks_created = Counter(
    "cloudsync_propagation_tasks_created_total",
    "Permission sync tasks created by group policy changes",
    ["provider"],
)
sweep_duration = Histogram(
    "cloudsync_sweep_duration_seconds",
    "Duration of pending/failed task sweeps",
    ["sweep"],
)
queue_depth = Gauge(
    "cloudsync_queue_depth",
    "Task ids waiting in the in-process queue",
)
