"""Dependency injection for FastAPI routes."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from fastapi import Request

from goldwatch.app import GoldWatchApp
from goldwatch.config import AppConfig
from goldwatch.database.models import ChannelKind
from goldwatch.database.repository import PersistenceGateway
from goldwatch.notifiers.base import NotificationChannel


@dataclass
class AppState:
    """Components shared by all requests, built once at process start."""

    pipeline: GoldWatchApp
    config: AppConfig
    channels: dict[ChannelKind, NotificationChannel] = field(default_factory=dict)

    @property
    def gateway(self) -> PersistenceGateway:
        return self.pipeline.gateway

    @property
    def clock(self) -> Callable[[], datetime]:
        return self.pipeline.clock


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_pipeline(request: Request) -> GoldWatchApp:
    """Dependency: retrieve the price pipeline."""
    return request.app.state.app_state.pipeline


def get_gateway(request: Request) -> PersistenceGateway:
    """Dependency: retrieve storage."""
    return request.app.state.app_state.gateway
