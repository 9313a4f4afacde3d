"""Shared request dependencies.

Stateful collaborators are built once in ``create_app`` and live on
``app.state``; routers receive them through these functions so tests can
swap them with ``app.dependency_overrides``.
"""
from typing import Optional

from fastapi import Header, Request

ANONYMOUS = "anonymous"


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity; requests without the header share one bucket."""
    return (x_user_id or "").strip() or ANONYMOUS


def get_session_factory(request: Request):
    return request.app.state.session_factory


def get_quota(request: Request):
    return request.app.state.quota


def get_search_service(request: Request):
    return request.app.state.search_service


def get_price_monitor(request: Request):
    return request.app.state.price_monitor


def get_geocoder(request: Request):
    return request.app.state.geocoder


def get_dashboard_service(request: Request):
    return request.app.state.dashboard_service


def get_scorer(request: Request):
    return request.app.state.scorer


def get_insight_generator(request: Request):
    return request.app.state.insight_generator
