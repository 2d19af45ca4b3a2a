from __future__ import annotations

from fastapi import Request

from runbuddy.config import Settings
from runbuddy.conversation.store import TurnStore
from runbuddy.llm.client import OpenAIClient
from runbuddy.webhook.handler import EventHandler


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_event_handler(request: Request) -> EventHandler:
    return request.app.state.event_handler


def get_ai_client(request: Request) -> OpenAIClient:
    return request.app.state.ai_client


def get_turn_store(request: Request) -> TurnStore:
    return request.app.state.turn_store
