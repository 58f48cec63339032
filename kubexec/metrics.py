from prometheus_client import Counter, Gauge, Histogram

METRICS_NAMESPACE = "kubexec"

RECONCILE_COUNTER = Counter(
    f"{METRICS_NAMESPACE}_reconcile_total",
    "Total number of reconciliation passes by outcome",
    ["outcome"],
)

RECONCILE_DURATION = Histogram(
    f"{METRICS_NAMESPACE}_reconcile_duration_seconds",
    "Time taken by a reconciliation pass",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

EXECUTION_COUNTER = Counter(
    f"{METRICS_NAMESPACE}_executions_total",
    "Total number of container executions by status",
    ["status"],
)

EXECUTION_DURATION = Histogram(
    f"{METRICS_NAMESPACE}_execution_duration_seconds",
    "Time taken to run the command in one container",
    ["transport"],
    buckets=[0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0],
)

WORKQUEUE_DEPTH = Gauge(
    f"{METRICS_NAMESPACE}_workqueue_depth",
    "Number of executor keys waiting to be reconciled",
)
