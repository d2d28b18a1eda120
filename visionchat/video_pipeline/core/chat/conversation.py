import asyncio
from enum import Enum
from typing import Callable, Iterator, List, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from visionchat.exceptions import ConversationStateException, ValidationException, VisionChatException
from visionchat.providers.base import ModelGateway
from visionchat.utils.validation import ChatRequest
from visionchat.video_pipeline.core.models import ChatTurn, FailureEvent, Stage, VideoSource
from visionchat.video_pipeline.utils.helper import format_chat_history

FailureListener = Callable[[FailureEvent], None]


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"


class Transcript:
    """Append-only list of chat turns. Only ``clear`` removes anything."""

    def __init__(self):
        self._turns: List[ChatTurn] = []

    def append(self, turn: ChatTurn) -> None:
        self._turns.append(turn)

    def clear(self) -> None:
        self._turns = []

    @property
    def turns(self) -> Tuple[ChatTurn, ...]:
        return tuple(self._turns)

    def format(self) -> str:
        return format_chat_history(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ChatTurn]:
        return iter(list(self._turns))


class ConversationManager:
    """
    Grounded question answering over one video and its summary.

    At most one question is in flight. The user turn is recorded as soon as a
    question is accepted; the assistant turn only when an answer arrives.
    ``reset`` bumps a generation counter so that an answer which settles
    after the video changed is dropped instead of landing in the new
    transcript.
    """

    def __init__(self, gateway: ModelGateway, failure_listener: Optional[FailureListener] = None):
        self.gateway = gateway
        self.transcript = Transcript()
        self.state = ConversationState.IDLE
        self._video: Optional[VideoSource] = None
        self._summary: Optional[str] = None
        self._generation = 0
        self._failure_listeners: List[FailureListener] = [failure_listener] if failure_listener else []

    @property
    def is_ready(self) -> bool:
        return self._video is not None and bool(self._summary)

    @property
    def summary(self) -> Optional[str]:
        return self._summary

    def subscribe(self, listener: FailureListener) -> None:
        self._failure_listeners.append(listener)

    def bind(self, video: VideoSource, summary: str) -> None:
        """Ground future answers on ``video`` and ``summary``. The transcript is kept."""
        self._video = video
        self._summary = summary

    def reset(self) -> None:
        """Forget the video, summary and transcript; in-flight answers are discarded."""
        self._generation += 1
        self._video = None
        self._summary = None
        self.transcript.clear()
        self.state = ConversationState.IDLE

    def _check_accepting(self) -> None:
        if not self.is_ready:
            raise ConversationStateException(
                "Process a video before asking questions.", reason="no_summary"
            )
        if self.state == ConversationState.AWAITING_REPLY:
            raise ConversationStateException(
                "Wait for the current answer before asking another question.", reason="awaiting_reply"
            )

    async def submit(self, question: str) -> Optional[ChatTurn]:
        """
        Ask one question.

        Returns the assistant turn, or None when the model call failed (a
        FailureEvent is emitted and the user turn stays in the transcript).

        Raises:
            ValidationException: blank question
            ConversationStateException: nothing to ground on, a reply is pending,
                or the video changed before the reply settled
        """
        try:
            question = ChatRequest(question=question or "").question
        except ValidationError as e:
            raise ValidationException(
                f"Invalid question: {e.errors()[0]['msg']}", error_code="INVALID_QUESTION"
            ) from e
        self._check_accepting()

        generation = self._generation
        video, summary = self._video, self._summary
        self.transcript.append(ChatTurn(role="user", content=question))
        self.state = ConversationState.AWAITING_REPLY
        chat_history = self.transcript.format()

        try:
            answer = await self.gateway.answer(video, question, summary, chat_history)
            answer = (answer or "").strip()
            if not answer:
                raise VisionChatException("The model returned an empty answer.", error_code="EMPTY_ANSWER")
        except asyncio.CancelledError:
            if generation == self._generation:
                self.state = ConversationState.IDLE
            raise
        except Exception as e:
            if generation != self._generation:
                logger.info(f"Discarding failed answer from a previous video: {e}")
                raise self._discarded() from e
            logger.error(f"Failed to answer question: {e}")
            self.state = ConversationState.IDLE
            self._emit(FailureEvent(
                stage=Stage.CONVERSATION,
                message="Failed to get a response from the AI. Please try again.",
                error_code=getattr(e, "error_code", None),
            ))
            return None

        if generation != self._generation:
            logger.info("Discarding answer that settled after the video changed")
            raise self._discarded()

        turn = ChatTurn(role="assistant", content=answer)
        self.transcript.append(turn)
        self.state = ConversationState.IDLE
        return turn

    @staticmethod
    def _discarded() -> ConversationStateException:
        return ConversationStateException(
            "The video changed before the answer arrived. Please ask again.", reason="video_changed"
        )

    def _emit(self, event: FailureEvent) -> None:
        for listener in self._failure_listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Failure listener raised: {e}")
