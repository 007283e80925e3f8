"""
Shared Prometheus Metrics for Scheduler Service
"""
from prometheus_client import Counter, Histogram

# Total scheduled job runs
SCHEDULER_JOB_RUNS = Counter(
    "cloudoptimizer_scheduler_job_runs_total",
    "Total number of scheduled job runs",
    ["job_name", "status"]
)

# Duration of scheduled jobs
SCHEDULER_JOB_DURATION = Histogram(
    "cloudoptimizer_scheduler_job_duration_seconds",
    "Duration of scheduled jobs in seconds",
    ["job_name"],
    buckets=[1, 5, 10, 30, 60, 120, 300, 600]
)
