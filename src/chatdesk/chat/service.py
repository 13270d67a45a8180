"""One logical conversation driven against one API adapter.

Created: 2026-03-04

Design notes:
- ``state`` is the single source of truth for "an exchange is in flight".
  It is claimed synchronously before the first suspension point so a second
  ``send_message`` fails immediately.
- Deltas are forwarded to listeners first and then merged into
  ``pending_message``; the terminal delta promotes it into ``history``.
- Network and API failures end up in ``last_error`` and ``on_message_error``;
  ``StateError`` and ``ProtocolError`` are raised to the caller.
- At most one title task exists per service. A new exchange awaits it before
  calling the adapter so two requests never share a conversation session.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from chatdesk.aborter import AbortController, run_abortable
from chatdesk.api.base import ChatCompletionAPI, ChatConversationAPI, WebAPI
from chatdesk.chat.models import (
    ChatMessage,
    ChatResponse,
    ChatRole,
    ExchangeState,
    MessageDelta,
    PendingMessage,
)
from chatdesk.chat.schemas import HistoryBlob, ServiceRecord
from chatdesk.chat.title import TitleGenerator
from chatdesk.chat.web_service import WebService
from chatdesk.errors import AbortError, APIError, NetworkError, ProtocolError, StateError
from chatdesk.history import HistoryKeeper, get_history_keeper
from chatdesk.signals import Signal

if TYPE_CHECKING:
    from chatdesk.api.manager import APIManager
    from chatdesk.config import Settings

logger = logging.getLogger(__name__)


class ChatService(WebService):
    """A single conversation: history, streaming state, title and persistence."""

    def __init__(
        self,
        name: str,
        api: WebAPI,
        *,
        icon: str | None = None,
        params: dict[str, Any] | None = None,
        api_params: dict[str, Any] | None = None,
        moment: str | None = None,
        title: str | None = None,
        history_keeper: HistoryKeeper | None = None,
        title_generator: TitleGenerator | None = None,
        settings: Settings | None = None,
    ):
        if not isinstance(api, (ChatCompletionAPI, ChatConversationAPI)):
            raise TypeError(f"Unsupported API type: {type(api).__name__}")
        super().__init__(name, api, icon=icon, params=params, api_params=api_params)
        if settings is None:
            from chatdesk.config import get_settings

            settings = get_settings()
        self.settings = settings
        self.history_keeper = history_keeper or get_history_keeper()
        self.title_generator = title_generator or TitleGenerator(
            content_limit=settings.title_content_limit
        )

        self.moment = moment
        self.title = title
        self.custom_title: str | None = None
        self.history: list[ChatMessage] = []
        self.state = ExchangeState.IDLE
        self.pending_message: PendingMessage | None = None
        self.last_response: ChatResponse | None = None
        self.last_error: Exception | None = None
        self.aborter = AbortController()
        # Without a moment there is nothing on disk to load.
        self.is_loaded = moment is None
        self._load_task: asyncio.Future | None = None
        self._title_task: asyncio.Task | None = None
        # Set by destroy(); nothing is written for this service afterwards.
        self._destroyed = False

        self.on_new_title = Signal("on_new_title")
        self.on_user_message = Signal("on_user_message")
        self.on_clear_error = Signal("on_clear_error")
        self.on_message_begin = Signal("on_message_begin")
        self.on_message_delta = Signal("on_message_delta")
        self.on_message_error = Signal("on_message_error")
        self.on_message = Signal("on_message")
        self.on_remove_messages_after = Signal("on_remove_messages_after")
        self.on_update_message = Signal("on_update_message")
        self.on_clear_messages = Signal("on_clear_messages")

    @property
    def pending(self) -> bool:
        return self.state is not ExchangeState.IDLE

    # -- persistence -----------------------------------------------------

    def to_record(self) -> ServiceRecord:
        record = super().to_record()
        record.moment = self.moment
        record.title = self.title
        return record

    @classmethod
    def deserialize(
        cls, data: dict[str, Any], api_manager: APIManager, **kwargs: Any
    ) -> ChatService:
        """Build a service from a services.json record.

        Raises:
            ValueError: the record is malformed or its endpoint is unknown.
        """
        record = ServiceRecord.model_validate(data)
        endpoint = api_manager.get_endpoint_by_id(record.api)
        api = api_manager.create_api_for_endpoint(endpoint)
        return cls(
            record.name,
            api,
            icon=record.icon,
            params=record.params,
            api_params=record.api_params,
            moment=record.moment,
            title=record.title,
            **kwargs,
        )

    async def load(self) -> None:
        """Read history from the keeper. Concurrent callers share one read."""
        if self.is_loaded:
            return
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load_history())
        await asyncio.shield(self._load_task)
        self.is_loaded = True

    async def _load_history(self) -> None:
        if not self.moment:
            return
        data = await self.history_keeper.remember(self.moment)
        if data:
            self.deserialize_history(data)
        logger.debug("Loaded %d messages for %s", len(self.history), self.moment)

    def serialize_history(self) -> dict[str, Any]:
        blob = HistoryBlob(
            title=self.title,
            custom_title=self.custom_title,
            history=[m.to_dict() for m in self.history],
        )
        if isinstance(self.api, ChatConversationAPI) and self.api.session is not None:
            blob.session = dict(self.api.session)
        return blob.dump()

    def deserialize_history(self, data: dict[str, Any]) -> None:
        blob = HistoryBlob.model_validate(data)
        self.history = [ChatMessage.from_dict(m) for m in blob.history]
        if blob.title:
            self.title = blob.title
        self.custom_title = blob.custom_title or None
        if isinstance(self.api, ChatConversationAPI) and blob.session is not None:
            self.api.session = dict(blob.session)

    def save_history(self) -> None:
        if self._destroyed:
            return
        if self.moment is None:
            self.moment = self.history_keeper.new_moment()
            # The new moment has to reach services.json.
            self.on_config_change.emit()
        self.history_keeper.save(self.moment, self.serialize_history())

    async def remove_trace(self) -> None:
        """Delete the persisted blob and, where supported, the server copy."""
        if self.moment:
            await self.history_keeper.forget(self.moment)
        if isinstance(self.api, ChatConversationAPI):
            if self.api.can_remove_from_server and self.api.session:
                try:
                    await self.api.remove_from_server()
                except Exception as e:
                    logger.debug("Could not remove conversation from server: %s", e)
            self.api.session = None

    async def destroy(self) -> None:
        self._destroyed = True
        self.abort()
        if self._title_task is not None:
            self._title_task.cancel()
        await self.remove_trace()

    # -- titles ----------------------------------------------------------

    def get_title(self) -> str | None:
        return self.custom_title or self.title

    def set_custom_title(self, title: str | None) -> None:
        self.custom_title = title or None
        self._notify_new_title(self.get_title())

    def _notify_new_title(self, title: str | None) -> None:
        self.on_new_title.emit(title)
        self.save_history()
        self.on_config_change.emit()

    async def wait_for_title(self) -> None:
        if self._title_task is not None:
            await asyncio.gather(self._title_task, return_exceptions=True)

    def _maybe_generate_title(self) -> None:
        if self.custom_title or self.last_error is not None or self.aborter.aborted:
            return
        if self._title_task is not None and not self._title_task.done():
            return
        size = len(self.history)
        if not self.settings.title_min_history <= size <= self.settings.title_max_history:
            return
        self._title_task = asyncio.create_task(self._generate_title())

    async def _generate_title(self) -> None:
        try:
            title = await self.title_generator.generate_for_conversation(
                list(self.history), self.api, signal=self.aborter.signal
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Title generation failed: %s", e)
            return
        # A custom title may have been set while the title exchange ran.
        if title and not self.custom_title:
            self.title = title
            self._notify_new_title(title)

    # -- exchanges -------------------------------------------------------

    def get_last_message(self) -> ChatMessage | None:
        return self.history[-1] if self.history else None

    def is_aborted(self) -> bool:
        return self.aborter.aborted

    def abort(self) -> None:
        self.aborter.abort()

    def _claim(self) -> None:
        if self.pending:
            raise StateError("There is pending message being received.")
        self.state = ExchangeState.STREAMING

    async def send_message(self, message: ChatMessage | str) -> None:
        """Append a user message and stream the reply into history.

        Raises:
            StateError: an exchange is already in flight.
            ProtocolError: the adapter broke the delta contract.
        """
        if isinstance(message, str):
            message = ChatMessage(role=ChatRole.USER, content=message)
        if message.role is ChatRole.USER and not message.content.strip():
            raise ValueError("Message from user must have content.")
        self._claim()
        try:
            if not self.is_loaded:
                await self.load()
            self.history.append(message)
            self.on_user_message.emit(message)
            self.save_history()
            await self._invoke_chat_api()
        finally:
            self.state = ExchangeState.IDLE
        if message.role is ChatRole.USER:
            self._maybe_generate_title()

    def can_regenerate_from(self) -> bool:
        if isinstance(self.api, ChatConversationAPI):
            return self.api.can_remove_messages_after
        return True

    def can_regenerate_last_response(self) -> bool:
        if self.pending or not self.history:
            return False
        last = self.history[-1]
        if last.role is ChatRole.USER:
            return True
        return last.role is ChatRole.ASSISTANT and self.can_regenerate_from()

    async def regenerate_last_response(self) -> None:
        """Ask again for the reply to the newest user message."""
        if not self.can_regenerate_last_response():
            raise StateError("Unable to regenerate last response.")
        last = self.history[-1]
        if last.role is ChatRole.USER:
            # The previous exchange failed; resend without adding a message.
            self._claim()
            try:
                await self._invoke_chat_api()
            finally:
                self.state = ExchangeState.IDLE
            if not self.title:
                self._maybe_generate_title()
            return
        index = len(self.history)
        while index > 0 and self.history[index - 1].role is not ChatRole.USER:
            index -= 1
        await self.regenerate_from(index)

    async def regenerate_from(self, index: int) -> None:
        """Drop ``history[index:]`` and request a new reply.

        A negative *index* counts from the end.
        """
        if not self.can_regenerate_from():
            raise StateError(f"{type(self.api).__name__} cannot regenerate responses.")
        if not self.history:
            raise StateError("Unable to regenerate when there is no message.")
        if self.pending:
            raise StateError("Unable to regenerate when there is pending message.")
        if index < 0:
            index += len(self.history)
        if index == 0:
            raise StateError("Can not regenerate from the root message.")
        if index < 0 or index >= len(self.history):
            raise StateError(f"Invalid index {index} to regenerate from.")
        self._claim()
        try:
            await self._truncate(index)
            await self._invoke_chat_api()
        finally:
            self.state = ExchangeState.IDLE

    async def remove_messages_after(self, index: int) -> None:
        """Truncate history to ``history[:index]``."""
        if self.pending:
            raise StateError("Can not remove messages while receiving a reply.")
        await self._truncate(index)

    async def _truncate(self, index: int) -> None:
        if not 0 < index <= len(self.history):
            raise StateError(f"Invalid index {index} to remove messages after.")
        if isinstance(self.api, ChatConversationAPI):
            if self.history[index - 1].role is not ChatRole.USER:
                raise StateError("Can only remove messages after a user message.")
            if not self.api.can_remove_messages_after:
                raise StateError(f"{type(self.api).__name__} cannot remove messages.")
            await self.api.remove_messages_after(index - 1)
        del self.history[index:]
        self.on_remove_messages_after.emit(index)
        self.save_history()

    def update_message(self, delta: MessageDelta, index: int) -> None:
        """Replace the fields in *delta* on ``history[index]``."""
        if self.pending:
            raise StateError("Can not edit messages while receiving a reply.")
        try:
            message = self.history[index].updated(delta)
        except IndexError:
            raise StateError(f"Invalid index {index} to update.") from None
        self.history[index] = message
        self.on_update_message.emit(message, index)
        self.save_history()

    async def clear(self) -> None:
        """Forget the whole conversation, including the persisted copy."""
        if self.pending:
            raise StateError("Can not clear messages while receiving a reply.")
        if self._title_task is not None:
            self._title_task.cancel()
            self._title_task = None
        self.history = []
        self.aborter = AbortController()
        self.pending_message = None
        self.last_response = None
        self.last_error = None
        self.title = None
        self.custom_title = None
        self.on_clear_messages.emit()
        self.on_new_title.emit(None)
        self.on_config_change.emit()
        await self.remove_trace()

    async def _invoke_chat_api(self) -> None:
        if self.last_error is not None:
            self.last_error = None
            self.on_clear_error.emit()
        self.last_response = None
        self.pending_message = None
        self.aborter = aborter = AbortController()
        self.on_message_begin.emit()

        if self._title_task is not None:
            await asyncio.shield(asyncio.gather(self._title_task, return_exceptions=True))

        def on_message_delta(delta: MessageDelta, response: ChatResponse) -> None:
            if aborter is not self.aborter or self.state is not ExchangeState.STREAMING:
                logger.debug("Dropping delta from a finished exchange")
                return
            self._accumulate(delta, response)

        try:
            await run_abortable(self._send(on_message_delta, aborter), aborter.signal)
        except AbortError as e:
            partial = self.pending_message is not None and self.pending_message.has_content()
            if not partial and not aborter.aborted:
                self._notify_message_error(e)
                return
        except (ProtocolError, StateError):
            self.pending_message = None
            raise
        except (NetworkError, APIError) as e:
            self._notify_message_error(e)
            return
        except Exception as e:
            logger.exception("Unexpected error from %s", self.api)
            self._notify_message_error(e)
            return

        self.state = ExchangeState.FINALIZING
        self._finalize(aborter.aborted)

    async def _send(self, on_message_delta, aborter: AbortController) -> None:
        api = self.api
        if isinstance(api, ChatCompletionAPI):
            await api.send_conversation(
                self._build_conversation(),
                signal=aborter.signal,
                on_message_delta=on_message_delta,
            )
        elif isinstance(api, ChatConversationAPI):
            await api.send_message(
                self.history[-1].content,
                signal=aborter.signal,
                on_message_delta=on_message_delta,
            )
        else:
            raise TypeError(f"Unsupported API type: {type(api).__name__}")

    def _build_conversation(self) -> Sequence[ChatMessage]:
        conversation = list(self.history)
        context_length = self._params.get("context_length")
        if context_length:
            conversation = conversation[-int(context_length) :]
        system_prompt = self._params.get("system_prompt")
        if system_prompt:
            conversation.insert(0, ChatMessage(role=ChatRole.SYSTEM, content=system_prompt))
        return conversation

    def _accumulate(self, delta: MessageDelta, response: ChatResponse) -> None:
        self.last_response = response
        self.on_message_delta.emit(delta, response)
        if self.pending_message is None:
            self.pending_message = PendingMessage()
        self.pending_message.apply(delta)
        if not response.pending:
            message = self.pending_message.to_message()
            self.pending_message = None
            self.history.append(message)
            self.on_message.emit(message, response)

    def _finalize(self, aborted: bool) -> None:
        pending = self.pending_message
        if pending is not None:
            if pending.has_content():
                # Aborted or cut off mid-stream; commit what arrived.
                last_id = self.last_response.id if self.last_response else None
                self._accumulate(
                    MessageDelta(), ChatResponse(pending=False, id=last_id, aborted=aborted)
                )
            else:
                self.pending_message = None
                if not aborted:
                    self._notify_message_error(
                        APIError("Incomplete message received from API.")
                    )
                    return
                self._emit_aborted_end()
        elif self.last_response is None:
            if not aborted:
                self._notify_message_error(NetworkError("Server closed connection."))
                return
            self._emit_aborted_end()
        self.save_history()

    def _emit_aborted_end(self) -> None:
        response = ChatResponse(pending=False, aborted=True)
        self.last_response = response
        self.on_message_delta.emit(MessageDelta(), response)

    def _notify_message_error(self, error: Exception) -> None:
        logger.warning("Exchange on %r failed: %s", self.name, error)
        self.pending_message = None
        self.last_error = error
        self.on_message_error.emit(error)


__all__ = ["ChatService"]
