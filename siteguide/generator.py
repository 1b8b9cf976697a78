"""Grounded answer generation with conversational history."""

from typing import Any

from openai import AsyncOpenAI

from .config import config
from .models import ConversationTurn, Lang, RetrievalResult
from .retry import RetryPolicy

logger = config.get_logger(__name__)

ANSWER_SYSTEM_INSTRUCTION = (
    "You are the site guide for a bus booking platform. "
    "Answer strictly from the provided context. "
    "If the answer is not in the context, say that you don't know and suggest "
    "the most likely section of the site; never make up facts or links. "
    "Respond in the same language as the user's question. "
    "Be concise and step-wise for first-time users."
)

NO_CONTEXT_MESSAGES: dict[Lang, str] = {
    "hi": (
        "माफ़ करें, इस सवाल के लिए साइट कॉन्टेक्स्ट नहीं मिला; कृपया साइट से जुड़े "
        "और खास शब्दों के साथ पूछें (जैसे App, Driver, Booking, Tracking)।"
    ),
    "en": (
        "Sorry, no site context found; try a more specific site-related question "
        "(e.g., App, Driver, Booking, Tracking)."
    ),
}

GENERATION_FAILED_MESSAGES: dict[Lang, str] = {
    "hi": (
        "साइट से जानकारी मिल गई, लेकिन जवाब तैयार नहीं हो सका; "
        "कृपया थोड़ी देर बाद फिर कोशिश करें।"
    ),
    "en": "Context retrieved, but generation failed; please try again shortly.",
}


def to_chat_messages(history: list[ConversationTurn]) -> list[dict[str, str]]:
    """Convert session turns to chat-completion messages.

    Returns:
        List of ``{"role", "content"}`` dicts, oldest first.
    """
    return [{"role": turn.role, "content": turn.text} for turn in history]


class AnswerGenerator:
    """Wraps the generative model for grounded answers and guide synthesis."""

    def __init__(
        self,
        openai_api_key: str | None = None,
        model: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize AnswerGenerator.

        Args:
            openai_api_key: Provider API key.
            model: Chat model name. If None, uses config.CHAT_MODEL.
            retry_policy: Backoff applied to every generation call.
        """
        default_headers = config.get_api_headers()
        self.client = AsyncOpenAI(
            api_key=openai_api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
        )
        self.model = model or config.CHAT_MODEL
        self.retry_policy = retry_policy or RetryPolicy.from_config()

    @staticmethod
    def build_prompt(query: str, contexts: str, lang: str | None = None) -> str:
        """Build the final user turn carrying the question and its context.

        Returns:
            Prompt text.
        """
        hint = f"User language hint: {lang}\n\n" if lang else ""
        return f"{hint}Question:\n{query}\n\nContext:\n{contexts}"

    async def generate(
        self,
        system_instruction: str,
        history: list[ConversationTurn],
        prompt: str,
    ) -> str:
        """Run one chat completion with retries.

        Returns:
            The model's text, stripped.

        Raises:
            ValueError: If the model returned no content.
        """
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_instruction},
            *to_chat_messages(history),
            {"role": "user", "content": prompt},
        ]

        async def _call() -> str:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                max_tokens=config.CHAT_MAX_TOKENS,
                temperature=config.CHAT_TEMPERATURE,
            )
            return response.choices[0].message.content or ""

        text = (await self.retry_policy.run(_call, label="generation")).strip()
        if not text:
            msg = "Model returned an empty response"
            raise ValueError(msg)
        return text

    async def answer(
        self,
        query: str,
        retrieval: RetrievalResult,
        history: list[ConversationTurn],
        lang: Lang = "en",
    ) -> str:
        """Answer a question from retrieved context.

        Empty context short-circuits to a localized "no context" message
        without calling the model. A failed generation call degrades to a
        localized apology instead of raising.

        Returns:
            The reply text.
        """
        if retrieval.is_empty:
            logger.info("No grounding context; skipping generation")
            return NO_CONTEXT_MESSAGES[lang]

        prompt = self.build_prompt(query, retrieval.contexts, lang)
        try:
            text = await self.generate(ANSWER_SYSTEM_INSTRUCTION, history, prompt)
        except Exception:
            logger.exception("Generation failed after retrieval succeeded")
            return GENERATION_FAILED_MESSAGES[lang]
        else:
            logger.info("Generated answer from %d sources", len(retrieval.sources))
            return text
