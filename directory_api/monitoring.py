"""Prometheus metrics instrumentation for application monitoring."""

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

# ==================== Account Workflow Metrics ====================

ACCOUNTS_CREATED = Counter(
    "directory_accounts_created_total",
    "Accounts successfully persisted by signup",
)
LOGIN_FAILURES = Counter(
    "directory_login_failures_total",
    "Rejected login attempts by internal reason",
    ["reason"],
)
BACKGROUND_JOB_FAILURES = Counter(
    "directory_background_job_failures_total",
    "Post-signup background jobs that raised",
)


def setup_monitoring(app: FastAPI) -> None:
    """Configure and expose Prometheus metrics endpoint."""
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=False,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics"],
        env_var_name="ENABLE_METRICS",
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )

    instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=True)
