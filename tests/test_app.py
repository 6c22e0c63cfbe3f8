"""
Application wiring: the app module imports cleanly and mounts every route.
"""

import importlib

from app.core.logging import get_logger


def test_app_module_imports():
    main = importlib.import_module("app.main")

    paths = {route.path for route in main.app.routes}
    assert {
        "/health",
        "/health/live",
        "/health/ready",
        "/api/v1/track/events",
        "/api/v1/track/page-views/end",
        "/api/v1/analytics/summary",
        "/api/v1/analytics/sessions",
        "/api/v1/analytics/page-views",
        "/api/v1/analytics/users",
    } <= paths


def test_get_logger_returns_a_usable_logger():
    logger = get_logger("app.wiring")
    logger.info("wiring.checked", ok=True)
