from prometheus_client import Counter, Histogram

RECONCILE_TOTAL = Counter(
    'gateway_auto_listener_reconcile_total',
    'HTTPRoute reconciliations, by result',
    ['result'],
)

RECONCILE_SECONDS = Histogram(
    'gateway_auto_listener_reconcile_seconds',
    'Time spent in a single HTTPRoute reconciliation',
)

GATEWAY_PATCH_TOTAL = Counter(
    'gateway_auto_listener_gateway_patch_total',
    'Gateway listener patch attempts, by outcome',
    ['outcome'],
)

HOSTNAME_DENIED_TOTAL = Counter(
    'gateway_auto_listener_hostname_denied_total',
    'Hostnames rejected by namespace hostname policy',
)

LISTENER_CONFLICT_TOTAL = Counter(
    'gateway_auto_listener_listener_conflict_total',
    'Hostnames skipped because their listener name was already held elsewhere',
)
