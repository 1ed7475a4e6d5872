"""
Prometheus series for the marketplace.

All series live on the default registry and are served by GET /metrics.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

from remix_market.config import settings

_PREFIX = "remix_market"

LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
PRICE_BUCKETS = (1, 2, 3, 5, 10, 20, 50, 100)


def _name(suffix: str) -> str:
    return f"{_PREFIX}_{suffix}"


class MarketMetrics:
    """
    Counters and histograms for HTTP traffic, prompt transactions, credit
    flow between buyers, sellers and the platform, and seller notifications.
    """

    def __init__(self) -> None:
        Info(_name("service"), "Service information").info(
            {"version": settings.api_version, "service_name": settings.service_name}
        )

        # HTTP
        self.http_requests_total = Counter(
            _name("http_requests_total"),
            "HTTP requests by route, method and status",
            ["endpoint", "method", "status_code"],
        )
        self.http_request_duration_seconds = Histogram(
            _name("http_request_duration_seconds"),
            "HTTP request latency",
            ["endpoint", "method"],
            buckets=LATENCY_BUCKETS,
        )
        self.http_requests_in_progress = Gauge(
            _name("http_requests_in_progress"),
            "HTTP requests currently being served",
            ["endpoint", "method"],
        )

        # Transactions
        self.prompt_transactions_total = Counter(
            _name("prompt_transactions_total"),
            "Purchases, saves and removals by outcome",
            ["operation", "outcome", "content_type"],
        )
        self.prompt_transaction_duration_seconds = Histogram(
            _name("prompt_transaction_duration_seconds"),
            "Time spent in one purchase, save or removal, retries included",
            ["operation"],
            buckets=LATENCY_BUCKETS[:-2],
        )
        self.transaction_retries_total = Counter(
            _name("transaction_retries_total"),
            "Attempts repeated after lock or serialization contention",
            ["operation"],
        )

        # Credit flow
        self.credits_spent_total = Counter(
            _name("credits_spent_total"), "Credits debited from buyers"
        )
        self.credits_paid_out_total = Counter(
            _name("credits_paid_out_total"), "Credits paid to sellers"
        )
        self.credits_retained_total = Counter(
            _name("credits_retained_total"), "Platform share of sales"
        )
        self.purchase_price_credits = Histogram(
            _name("purchase_price_credits"), "Sale prices", buckets=PRICE_BUCKETS
        )

        self.notifications_total = Counter(
            _name("notifications_total"),
            "Seller notification deliveries",
            ["success"],
        )
        self.errors_total = Counter(
            _name("errors_total"),
            "Failures by exception type and operation",
            ["error_type", "operation"],
        )

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_transaction(
        self, operation: str, outcome: str, content_type: str, duration: float
    ) -> None:
        """`outcome` is "success", "noop" or the failing exception class name."""
        self.prompt_transactions_total.labels(
            operation=operation, outcome=outcome, content_type=content_type
        ).inc()
        self.prompt_transaction_duration_seconds.labels(operation=operation).observe(duration)

    def record_sale(self, price: int, payout: int) -> None:
        self.credits_spent_total.inc(price)
        self.credits_paid_out_total.inc(payout)
        self.credits_retained_total.inc(price - payout)
        self.purchase_price_credits.observe(price)

    def record_retry(self, operation: str) -> None:
        self.transaction_retries_total.labels(operation=operation).inc()

    def record_notification(self, success: bool) -> None:
        self.notifications_total.labels(success=str(success).lower()).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


metrics = MarketMetrics()
