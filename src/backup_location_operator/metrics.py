"""Prometheus metrics for the Backup Location Operator."""

from prometheus_client import Counter, Gauge, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "backup_location_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "backup_location_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "backup_location_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "backup_location_operator_resource_status_total",
    "Resource status transitions observed at the end of a reconciliation",
    ["kind", "status"],
)

# Bucket operation metrics
bucket_operations_total = Counter(
    "backup_location_operator_bucket_operations_total",
    "Total number of bucket lifecycle operations",
    ["provider", "operation", "result"],
)

bucket_operation_retries_total = Counter(
    "backup_location_operator_bucket_operation_retries_total",
    "Total number of retried provider calls",
    ["provider"],
)

# Backup storage location writes
bsl_writes_total = Counter(
    "backup_location_operator_bsl_writes_total",
    "BackupStorageLocation writes by action",
    ["action"],
)

ca_bundle_certificates = Gauge(
    "backup_location_operator_ca_bundle_certificates",
    "Number of distinct CA certificates in the aggregated bundle",
)

# API call metrics
api_call_total = Counter(
    "backup_location_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "backup_location_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)
