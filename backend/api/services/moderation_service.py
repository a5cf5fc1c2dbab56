"""Chat moderation through an OpenAI-compatible chat-completions endpoint.

Policy: fail open. Any classifier failure lets the message through so that a
classifier outage never takes chat down. Every fail-open is logged with its
own prefix and counted, so degradation is visible on ``/status``.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    RateLimitError,
)
from openai.types.chat import ChatCompletionMessageParam
from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"

DEFAULT_MODELS = {
    "openai": "gpt-3.5-turbo",
    "groq": "llama-3.1-8b-instant",
}

SYSTEM_PROMPT = """You are the chat moderator of a live-streaming platform.
Decide whether the user's message is acceptable in a public chat.

The message is INAPPROPRIATE if it contains:
- Insults or offensive language
- Hate or discrimination
- Harassment or bullying
- Explicit or inappropriate sexual content
- Threats or violence
- Excessive spam or repetitive content

Reply ONLY with JSON in this format:
{
  "isAppropriate": true/false,
  "reason": "short explanation when inappropriate"
}"""


class ClassifierUnavailable(Exception):
    """No classifier is configured."""


class ClassifierVerdict(BaseModel):
    """JSON body the classifier is asked to produce."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_appropriate: StrictBool = Field(alias="isAppropriate")
    reason: str | None = None


@dataclass
class ModerationResult:
    appropriate: bool
    reason: str | None = None
    failed_open: bool = False


@dataclass
class ModerationStats:
    """Counters for operators; fail-opens are kept apart from real verdicts."""

    checked: int = 0
    rejected: int = 0
    failed_open: int = 0
    last_fail_open_at: datetime | None = None
    last_fail_open_kind: str | None = None
    fail_open_by_kind: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "checked": self.checked,
            "rejected": self.rejected,
            "failed_open": self.failed_open,
            "last_fail_open_at": (
                self.last_fail_open_at.isoformat() if self.last_fail_open_at else None
            ),
            "last_fail_open_kind": self.last_fail_open_kind,
            "fail_open_by_kind": dict(self.fail_open_by_kind),
        }


class ModerationService:
    """Classify chat messages as appropriate or not.

    One classifier call per message: no retry, no cache. The call is bounded
    by ``timeout`` seconds.
    """

    def __init__(
        self,
        openai_api_key: str = "",
        groq_api_key: str = "",
        model: str = "",
        timeout: float = 5.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.timeout = timeout
        self.stats = ModerationStats()

        if openai_api_key:
            self.provider = "openai"
            api_key, base_url = openai_api_key, OPENAI_BASE_URL
        elif groq_api_key:
            self.provider = "groq"
            api_key, base_url = groq_api_key, GROQ_BASE_URL
        else:
            self.provider = "none"
            api_key, base_url = "", ""

        self.model = model or DEFAULT_MODELS.get(self.provider, "")

        if client is not None:
            self._client: AsyncOpenAI | None = client
        elif api_key:
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
            )
        else:
            self._client = None
            logger.warning(
                "No OPENAI_API_KEY or GROQ_API_KEY set, chat moderation will fail open"
            )

        logger.info(f"ModerationService initialized: provider={self.provider}, model={self.model}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def moderate(self, content: str) -> ModerationResult:
        """Classify ``content``. Never raises."""
        self.stats.checked += 1
        try:
            verdict = await self._classify(content)
        except ClassifierUnavailable as e:
            return self._fail_open("unconfigured", e)
        except APITimeoutError as e:
            return self._fail_open("timeout", e)
        except AuthenticationError as e:
            return self._fail_open("auth", e)
        except RateLimitError as e:
            return self._fail_open("rate_limited", e)
        except (APIConnectionError, APIStatusError) as e:
            return self._fail_open("api_error", e)
        except (ValidationError, ValueError) as e:
            return self._fail_open("malformed_response", e)
        except Exception as e:
            logger.exception(f"Unexpected moderation error: {e}")
            return self._fail_open("unexpected", e)

        if not verdict.is_appropriate:
            self.stats.rejected += 1
        logger.debug(
            f"Moderation verdict: appropriate={verdict.is_appropriate}, "
            f"reason={verdict.reason!r}, length={len(content)}"
        )
        return ModerationResult(appropriate=verdict.is_appropriate, reason=verdict.reason)

    async def _classify(self, content: str) -> ClassifierVerdict:
        if self._client is None:
            raise ClassifierUnavailable("No AI API key configured")

        messages: list[ChatCompletionMessageParam] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": content},
        ]
        completion = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=0.3,
            max_tokens=150,
            response_format={"type": "json_object"},
            timeout=self.timeout,
        )

        if not completion.choices:
            raise ValueError("Classifier returned no choices")
        raw = completion.choices[0].message.content
        if not raw:
            raise ValueError("Classifier returned empty content")

        return ClassifierVerdict.model_validate_json(raw)

    def _fail_open(self, kind: str, error: BaseException) -> ModerationResult:
        self.stats.failed_open += 1
        self.stats.last_fail_open_at = datetime.now(UTC)
        self.stats.last_fail_open_kind = kind
        self.stats.fail_open_by_kind[kind] = self.stats.fail_open_by_kind.get(kind, 0) + 1
        logger.warning(
            f"[moderation:fail-open] kind={kind} error={type(error).__name__}: {error} "
            f"(total={self.stats.failed_open})"
        )
        # No reason: senders must not learn that the classifier is down
        return ModerationResult(appropriate=True, failed_open=True)
