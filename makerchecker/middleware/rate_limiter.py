"""
Rate limiting configuration.

The Limiter instance is created in makerchecker/__init__.py with no
default limits; this module applies limits per route category.

Usage:
    from makerchecker.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

STAGING_LIMIT = "120/minute"
MIGRATION_LIMIT = "10/minute"

# Endpoints that rewrite whole production tables
MIGRATION_ENDPOINTS = (
    "staging.migrate_process",
    "staging.migrate_sheet",
    "staging.migration_task_completed",
)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to the API.

    Limits (per remote IP):
        - Migration endpoints: 10/minute
        - Everything else on the staging blueprint: 120/minute

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for endpoint in MIGRATION_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view:
            limiter.limit(MIGRATION_LIMIT)(view)

    bp = app.blueprints.get("staging")
    if bp:
        limiter.limit(STAGING_LIMIT)(bp)

    app.logger.info(
        "Rate limiter configured: migration: %s, staging: %s", MIGRATION_LIMIT, STAGING_LIMIT,
    )
