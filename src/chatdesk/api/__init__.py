"""Chat backend adapters."""

from chatdesk.api.base import ChatCompletionAPI, ChatConversationAPI, OnMessageDelta, WebAPI
from chatdesk.api.endpoint import APIEndpoint
from chatdesk.api.manager import APIManager, get_api_manager

__all__ = [
    "APIEndpoint",
    "APIManager",
    "ChatCompletionAPI",
    "ChatConversationAPI",
    "OnMessageDelta",
    "WebAPI",
    "get_api_manager",
]
