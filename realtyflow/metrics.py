"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

api_requests_total = Counter('api_requests_total', 'Total API requests', ['method', 'endpoint', 'status'])
api_request_duration = Histogram('api_request_duration_seconds', 'API request duration')
bookings_total = Counter('bookings_total', 'Automated booking outcomes', ['outcome'])
calendar_provider_errors_total = Counter(
    'calendar_provider_errors_total', 'Calendar provider failures', ['operation']
)
notifications_failed_total = Counter('notifications_failed_total', 'Failed notification sends', ['channel'])
