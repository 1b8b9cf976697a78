"""Cached onboarding guide synthesized from many intent searches."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from .config import config
from .models import GuideCacheEntry, Lang, RetrievalMatch
from .retriever import format_context

if TYPE_CHECKING:
    from collections.abc import Callable, MutableMapping

    from .generator import AnswerGenerator
    from .retriever import ContextRetriever

logger = config.get_logger(__name__)

GUIDE_INTENTS: tuple[str, ...] = (
    "features",
    "how it works",
    "booking",
    "tracking",
    "payments",
    "safety",
    "reviews",
    "helpline",
    "admin login",
    "app",
    "mobile app",
    "android app",
    "ios app",
    "download app",
    "driver",
    "driver onboarding",
    "driver app",
    "driver documents",
    "driver shifts",
    "driver sos",
)

GUIDE_SYSTEM_INSTRUCTION = (
    "Create a short, friendly onboarding guide for Tier-2 Indian city users in "
    "the requested language, using only the provided context; keep language "
    "simple; include steps for features, how it works, booking, tracking, "
    "payments, reviews, safety, admin login, App (Android/iOS) quick usage, and "
    "Driver (onboarding, documents, shifts, SOS); include where to tap/click; "
    "do not invent URLs; return concise bullets."
)

GUIDE_PROMPTS: dict[Lang, str] = {
    "hi": (
        "कॉन्टेक्स्ट देखकर 'Features', 'How it works', 'Booking', 'Tracking', "
        "'Payments', 'Reviews', 'Safety', 'Admin login', 'App (Android/iOS)', और "
        "'Driver (onboarding/documents/shifts/SOS)' का छोटा, सरल गाइड दें, सीधे "
        "स्टेप्स में, बिना नए लिंक बनाए।"
    ),
    "en": (
        "From the context, produce a concise guide for 'Features', 'How it works', "
        "'Booking', 'Tracking', 'Payments', 'Reviews', 'Safety', 'Admin login', "
        "'App (Android/iOS)', and 'Driver (onboarding/documents/shifts/SOS)', "
        "step-by-step, no fabricated links."
    ),
}

STATIC_GUIDES: dict[Lang, str] = {
    "hi": "\n".join([
        "• होम: ऊपर मेन्यू से 'Features', 'How it works', 'Booking', 'Tracking', "
        "'App', 'Driver', 'Admin' खोलें।",
        "• बुकिंग: रूट/तारीख चुनें → यात्री विवरण → पेमेंट → कन्फर्मेशन।",
        "• ट्रैकिंग: 'Tracking' में PNR/बुकिंग ID से लाइव स्टेटस देखें।",
        "• पेमेंट: कार्ड/UPI/नेट बैंकिंग दिखे तो चुनें; SMS/ईमेल पर रिसीट आती है।",
        "• रिव्यू/सेफ्टी: रेटिंग दें, SOS/शिकायत दर्ज करें।",
        "• ऐप: 'App' में एंड्रॉइड/iOS डाउनलोड, लॉगिन, और क्विक-यूज़ स्टेप्स देखें।",
        "• ड्राइवर: 'Driver' में ऑनबोर्डिंग, ज़रूरी डॉक्यूमेंट्स, शिफ्ट मैनेजमेंट, "
        "SOS रिपोर्टिंग।",
        "• एडमिन: 'Admin login' से स्टाफ/मैनेजर साइन-इन करें।",
    ]),
    "en": "\n".join([
        "• Home: Use top menu for 'Features', 'How it works', 'Booking', "
        "'Tracking', 'App', 'Driver', 'Admin'.",
        "• Booking: Choose route/date → passenger details → pay → confirmation.",
        "• Tracking: Use PNR/booking ID for live status.",
        "• Payments: Card/UPI/net banking as available; receipt via SMS/email.",
        "• Reviews/Safety: Give ratings, use SOS/report issue.",
        "• App: In 'App', find Android/iOS download, login, and quick usage.",
        "• Driver: In 'Driver', see onboarding, required documents, shift "
        "management, SOS reporting.",
        "• Admin: Staff/managers sign in via 'Admin login'.",
    ]),
}


class GuideCache:
    """One cached guide per language, expired after a fixed TTL."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        storage: MutableMapping[str, GuideCacheEntry] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = (
            config.GUIDE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        )
        self._storage = {} if storage is None else storage
        self._clock = clock

    def get(self, lang: Lang) -> str | None:
        """Return the cached guide if it is younger than the TTL.

        Returns:
            Guide text, or None on a miss or an expired entry.
        """
        entry = self._storage.get(lang)
        if entry is None or entry.lang != lang:
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            self._storage.pop(lang, None)
            return None
        return entry.text

    def put(self, lang: Lang, text: str) -> None:
        self._storage[lang] = GuideCacheEntry(
            text=text, lang=lang, timestamp=self._clock()
        )

    def invalidate(self) -> None:
        """Drop every cached guide (called after the index changes)."""
        self._storage.clear()


class GuideSynthesizer:
    """Builds the onboarding guide from the indexed site content."""

    def __init__(
        self,
        retriever: ContextRetriever,
        generator: AnswerGenerator,
        cache: GuideCache | None = None,
        intents: tuple[str, ...] = GUIDE_INTENTS,
        top_k: int | None = None,
        max_context_bytes: int | None = None,
    ) -> None:
        """Initialize the synthesizer.

        Args:
            retriever: Used for query embeddings and similarity search.
            generator: Used for the single synthesis call.
            cache: Guide cache; a fresh one is created if omitted.
            intents: Curated feature/workflow phrases to search for.
            top_k: Matches fetched per intent.
            max_context_bytes: Cap on the assembled context blob.
        """
        self.retriever = retriever
        self.generator = generator
        self.cache = cache or GuideCache()
        self.intents = intents
        self.top_k = config.GUIDE_TOP_K if top_k is None else top_k
        self.max_context_bytes = (
            config.GUIDE_CONTEXT_MAX_BYTES
            if max_context_bytes is None
            else max_context_bytes
        )

    async def build_context(self) -> str:
        """Search every intent and join all matches into one context blob.

        Returns:
            The (capped) context; empty when the index has nothing relevant.
        """
        vectors = await self.retriever.embed_queries(list(self.intents))
        per_intent = await asyncio.gather(
            *(self.retriever.search(vector, self.top_k) for vector in vectors)
        )
        matches: list[RetrievalMatch] = [m for result in per_intent for m in result]
        return format_context(matches, self.max_context_bytes)

    async def get_guide(self, lang: Lang) -> str:
        """Return the onboarding guide in ``lang``, from cache when fresh.

        Returns:
            Guide text.
        """
        cached = self.cache.get(lang)
        if cached is not None:
            logger.debug("Guide cache hit for %s", lang)
            return cached

        contexts = await self.build_context()
        if not contexts.strip():
            logger.info("Index empty; serving static %s guide", lang)
            text = STATIC_GUIDES[lang]
        else:
            prompt = f"Instruction:\n{GUIDE_PROMPTS[lang]}\n\nContext:\n{contexts}"
            try:
                text = await self.generator.generate(
                    GUIDE_SYSTEM_INSTRUCTION, [], prompt
                )
            except Exception:
                logger.exception("Guide generation failed; serving static guide")
                return STATIC_GUIDES[lang]

        self.cache.put(lang, text)
        return text

    def invalidate(self) -> None:
        """Forget cached guides so the next request regenerates them."""
        self.cache.invalidate()
        logger.info("Guide cache invalidated")
