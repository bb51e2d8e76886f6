from prometheus_client import Counter
# Prometheus metrics for the session ledger and pricing engine

# Pool reservations and releases, counted in sessions
pool_reserved_sessions_total = Counter(
    "pool_reserved_sessions_total", "Sessions reserved from institution pools"
)
pool_released_sessions_total = Counter(
    "pool_released_sessions_total", "Sessions released back to institution pools"
)
pool_purchased_sessions_total = Counter(
    "pool_purchased_sessions_total", "Sessions added to pools by completed purchases"
)

# Reservation or consumption rejected for lack of capacity
capacity_reject_total = Counter(
    "capacity_reject_total", "Operations rejected for insufficient capacity", ["scope"]
)

# Optimistic-concurrency conflicts detected by the transaction runner
ledger_conflict_total = Counter(
    "ledger_conflict_total", "Ledger transaction conflicts (retried)"
)

sessions_consumed_total = Counter(
    "sessions_consumed_total", "Sessions consumed by completed interviews"
)

session_request_review_total = Counter(
    "session_request_review_total", "Reviewed student session requests", ["status"]
)

price_change_applied_total = Counter(
    "price_change_applied_total", "Scheduled price changes applied", ["change_type"]
)

__all__ = [
    "pool_reserved_sessions_total",
    "pool_released_sessions_total",
    "pool_purchased_sessions_total",
    "capacity_reject_total",
    "ledger_conflict_total",
    "sessions_consumed_total",
    "session_request_review_total",
    "price_change_applied_total",
]
