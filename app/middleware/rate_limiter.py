"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in app/__init__.py with no default limits; this module decides
which blueprints get which limit.

    - journey_maps:  JOURNEY_RATE_LIMIT (default 120/minute per client)
    - health:        exempt

Rate limiting is disabled in testing mode.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """Apply rate limits to the API blueprints."""
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    journey_limit = app.config.get("JOURNEY_RATE_LIMIT", "120/minute")
    bp = app.blueprints.get("journey_maps")
    if bp:
        limiter.limit(journey_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured (journey maps %s, health exempt)", journey_limit)
