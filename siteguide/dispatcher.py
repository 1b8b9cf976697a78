"""Entry point for inbound questions: local shortcuts first, then RAG."""

from __future__ import annotations

import re
import uuid
from typing import TYPE_CHECKING

from .config import config
from .errors import QueryValidationError
from .language import detect_language
from .models import AssistantReply, Lang

if TYPE_CHECKING:
    from .generator import AnswerGenerator
    from .guide import GuideSynthesizer
    from .retriever import ContextRetriever
    from .session import SessionStore

logger = config.get_logger(__name__)

GUIDE_COMMANDS = frozenset({"site_guide", "show guide", "show_guide", "guide", "गाइड"})

GREETING_RE = re.compile(r"^(hi+|hello+|hey+|namaste|नमस्ते|हेलो)[!.।\s]*$")
HINDI_GREETING_RE = re.compile(r"namaste|नमस्ते|हेलो")

PLATFORM_KEYWORDS: tuple[str, ...] = (
    "feature",
    "how it works",
    "works",
    "platform",
    "booking",
    "book",
    "tracking",
    "track",
    "payment",
    "app",
    "driver",
    "safety",
    "review",
    "admin",
    "login",
    "बुकिंग",
    "ट्रैकिंग",
    "ड्राइवर",
    "ऐप",
)

GREETING_MESSAGES: dict[Lang, str] = {
    "hi": (
        "नमस्कार! जल्दी शुरू करें: 'Features', 'How it works', 'Booking', "
        "'Tracking', 'App', 'Driver', 'Reviews', 'Safety'."
    ),
    "en": (
        "Hello! Quick picks: 'Features', 'How it works', 'Booking', 'Tracking', "
        "'App', 'Driver', 'Reviews', 'Safety'."
    ),
}

PLATFORM_OVERVIEW_MESSAGES: dict[Lang, str] = {
    "hi": (
        "यह प्लेटफ़ॉर्म बस बुकिंग, लाइव ट्रैकिंग, ऑनलाइन पेमेंट, रिव्यू और SOS "
        "सेफ्टी देता है। ड्राइवर 'Driver' सेक्शन में ऑनबोर्डिंग और शिफ्ट देख सकते "
        "हैं; स्टाफ 'Admin login' से साइन-इन करता है। पूरा गाइड देखने के लिए "
        "'site_guide' लिखें।"
    ),
    "en": (
        "This platform offers bus booking, live tracking, online payments, reviews "
        "and SOS safety. Drivers use the 'Driver' section for onboarding and "
        "shifts; staff sign in via 'Admin login'. Type 'site_guide' for the full "
        "guide."
    ),
}


def is_guide_command(normalized: str) -> bool:
    return normalized in GUIDE_COMMANDS


def is_greeting(normalized: str) -> bool:
    return GREETING_RE.match(normalized) is not None


def matches_platform_keyword(normalized: str) -> bool:
    return any(keyword in normalized for keyword in PLATFORM_KEYWORDS)


class AssistantDispatcher:
    """Routes a question through the fallback ladder and records the exchange.

    Branches, first match wins:

    1. explicit guide command -> cached onboarding guide
    2. pure greeting -> canned greeting with quick picks
    3. platform keyword while the index is still empty -> canned overview
    4. anything else -> retrieve context, then generate a grounded answer
    """

    def __init__(
        self,
        retriever: ContextRetriever,
        generator: AnswerGenerator,
        guide: GuideSynthesizer,
        sessions: SessionStore,
    ) -> None:
        self.retriever = retriever
        self.generator = generator
        self.guide = guide
        self.sessions = sessions

    async def handle(
        self,
        query: str | None,
        lang: str | None = None,
        top_k: int | None = None,
        session_id: str | None = None,
    ) -> AssistantReply:
        """Answer one inbound question.

        Returns:
            Reply text, sources, reply language and the session id used.

        Raises:
            QueryValidationError: If the query is missing or blank.
        """
        if not isinstance(query, str) or not query.strip():
            msg = "query required"
            raise QueryValidationError(msg)

        session_id = session_id or str(uuid.uuid4())
        normalized = query.lower().strip()
        reply_lang = detect_language(query, lang)

        if is_guide_command(normalized):
            text = await self.guide.get_guide(reply_lang)
            return self._reply(session_id, query, text, [], reply_lang, "guide")

        if is_greeting(normalized):
            greeting_lang: Lang = (
                "hi" if HINDI_GREETING_RE.search(normalized) else reply_lang
            )
            return self._reply(
                session_id,
                query,
                GREETING_MESSAGES[greeting_lang],
                [],
                greeting_lang,
                "greeting",
            )

        if matches_platform_keyword(normalized) and not (
            self.retriever.has_indexed_content()
        ):
            return self._reply(
                session_id,
                query,
                PLATFORM_OVERVIEW_MESSAGES[reply_lang],
                [],
                reply_lang,
                "platform",
            )

        history = self.sessions.history(session_id)
        retrieval = await self.retriever.retrieve(query, top_k)
        text = await self.generator.answer(query, retrieval, history, reply_lang)
        return self._reply(
            session_id, query, text, retrieval.sources, reply_lang, "rag"
        )

    def _reply(  # noqa: PLR0913,PLR0917
        self,
        session_id: str,
        query: str,
        text: str,
        sources: list[str],
        lang: Lang,
        branch: str,
    ) -> AssistantReply:
        self.sessions.record_exchange(session_id, query, text)
        logger.info("Session %s answered via %s branch", session_id, branch)
        return AssistantReply(
            text=text, sources=sources, lang=lang, session_id=session_id
        )
