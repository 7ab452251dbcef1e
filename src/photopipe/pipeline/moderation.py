"""Content moderation client and failure policies.

The OpenAI moderation endpoint scores an image per category; the scores
are mapped to APPROVE / NEEDS_REVIEW / REJECT against two thresholds.
What happens when the service cannot give an answer is not decided here
but by a failure policy chosen once at startup:

- FailClosedPolicy: production-grade deployments, unanswered = REJECT
- FailOpenPolicy: everything else, unanswered = APPROVE with a warning
"""

import asyncio
import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from openai import OpenAI, OpenAIError

from photopipe.core.config import Settings
from photopipe.core.exceptions import ConfigurationError, ModerationServiceError
from photopipe.pipeline.types import MediaPurpose, ModerationDecision, ModerationVerdict

logger = logging.getLogger(__name__)

# Categories rejected as soon as they reach the review threshold
ZERO_TOLERANCE_CATEGORIES = frozenset({"sexual/minors", "sexual_minors"})

FALLBACK_CATEGORY = "moderation_unavailable"


def _scores_as_dict(category_scores: Any) -> Dict[str, Any]:
    """Turn the SDK's category score model (or a plain dict) into a dict."""
    if category_scores is None:
        return {}
    if isinstance(category_scores, dict):
        return category_scores
    if hasattr(category_scores, "model_dump"):
        return category_scores.model_dump(by_alias=True)
    return {}


def interpret_scores(
    category_scores: Any,
    flagged: bool,
    review_threshold: float,
    reject_threshold: float,
) -> tuple[ModerationDecision, str, float, str]:
    """Map per-category scores to a decision.

    Returns:
        (decision, category, confidence, reason)

    Raises:
        ModerationServiceError: If no usable score is present
    """
    scores = {
        name: float(value)
        for name, value in _scores_as_dict(category_scores).items()
        if isinstance(value, (int, float)) and not isinstance(value, bool)
    }
    if not scores:
        raise ModerationServiceError("Moderation response contained no category scores")

    category, score = max(scores.items(), key=lambda item: item[1])
    if not 0.0 <= score <= 1.0:
        raise ModerationServiceError(f"Moderation score out of range: {category}={score}")

    if category in ZERO_TOLERANCE_CATEGORIES and score >= review_threshold:
        return ModerationDecision.REJECT, category, score, "Content contains prohibited material"
    if score >= reject_threshold:
        return ModerationDecision.REJECT, category, score, f"{category} score above rejection threshold"
    if flagged or score >= review_threshold:
        return ModerationDecision.NEEDS_REVIEW, category, score, f"{category} score requires review"
    return ModerationDecision.APPROVE, "clean", round(1.0 - score, 4), "Content passed safety checks"


class ModerationClient(ABC):
    """A vision moderation backend."""

    model: str = ""

    @abstractmethod
    def moderate(self, data: bytes, mime_type: str, purpose: MediaPurpose) -> ModerationVerdict:
        """Classify one image. Blocking.

        Raises:
            ModerationServiceError: If the service fails or answers ambiguously
        """


class OpenAIModerationClient(ModerationClient):
    """Client for the OpenAI moderation endpoint with image input."""

    def __init__(
        self,
        api_key: str,
        model: str = "omni-moderation-latest",
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        review_threshold: float = 0.4,
        reject_threshold: float = 0.8,
    ):
        """Initialize moderation client.

        Args:
            api_key: OpenAI API key
            model: Moderation model name
            base_url: Optional API base URL override
            timeout: Per-request HTTP timeout in seconds
            review_threshold: Score at which content needs human review
            reject_threshold: Score at which content is rejected
        """
        self.model = model
        self.review_threshold = review_threshold
        self.reject_threshold = reject_threshold
        # The SDK retries by default; this client must make exactly one call
        self._client = OpenAI(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout,
            max_retries=0,
        )

    def moderate(self, data: bytes, mime_type: str, purpose: MediaPurpose) -> ModerationVerdict:
        start_time = time.time()
        data_uri = f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"

        try:
            response = self._client.moderations.create(
                model=self.model,
                input=[{"type": "image_url", "image_url": {"url": data_uri}}],
            )
        except OpenAIError as e:
            raise ModerationServiceError(f"Moderation request failed: {type(e).__name__}") from e

        results = getattr(response, "results", None)
        if not results:
            raise ModerationServiceError("Moderation response contained no results")

        result = results[0]
        decision, category, confidence, reason = interpret_scores(
            getattr(result, "category_scores", None),
            bool(getattr(result, "flagged", False)),
            self.review_threshold,
            self.reject_threshold,
        )
        return ModerationVerdict(
            decision=decision,
            category=category,
            confidence=confidence,
            reason=reason,
            model=self.model,
            processing_ms=int((time.time() - start_time) * 1000),
        )


class UnconfiguredModerationClient(ModerationClient):
    """Stand-in used when no moderation credentials exist outside production.

    Every call fails, so the failure policy decides the outcome.
    """

    model = "not-configured"

    def moderate(self, data: bytes, mime_type: str, purpose: MediaPurpose) -> ModerationVerdict:
        raise ModerationServiceError("Moderation service not configured")


class ModerationFailurePolicy(ABC):
    """Decides the verdict when moderation could not produce one."""

    name: str = ""

    @abstractmethod
    def on_failure(self, error: Exception, purpose: MediaPurpose) -> ModerationVerdict:
        """Produce the substitute verdict for a failed moderation call."""


class FailClosedPolicy(ModerationFailurePolicy):
    """Treat an unanswered moderation call as a rejection."""

    name = "closed"

    def on_failure(self, error: Exception, purpose: MediaPurpose) -> ModerationVerdict:
        logger.error(
            "Moderation unavailable, rejecting upload",
            extra={"policy": self.name, "media_purpose": purpose.value, "error_type": type(error).__name__},
        )
        return ModerationVerdict(
            decision=ModerationDecision.REJECT,
            category=FALLBACK_CATEGORY,
            confidence=0.0,
            reason="Content moderation unavailable",
            fallback=True,
            model="fail-closed",
        )


class FailOpenPolicy(ModerationFailurePolicy):
    """Treat an unanswered moderation call as an approval, with a warning."""

    name = "open"

    def on_failure(self, error: Exception, purpose: MediaPurpose) -> ModerationVerdict:
        warning = f"Moderation skipped: {type(error).__name__}"
        logger.warning(
            "Moderation unavailable, approving upload (fail-open)",
            extra={"policy": self.name, "media_purpose": purpose.value, "error_type": type(error).__name__},
        )
        return ModerationVerdict(
            decision=ModerationDecision.APPROVE,
            category=FALLBACK_CATEGORY,
            confidence=0.0,
            reason="Content moderation unavailable",
            fallback=True,
            warning=warning,
            model="fail-open",
        )


def select_failure_policy(settings: Settings) -> ModerationFailurePolicy:
    """Pick the failure policy for this deployment.

    Raises:
        ConfigurationError: On an unknown policy name, or fail-open in production
    """
    override = settings.MODERATION_FAILURE_POLICY.strip().lower()

    if override == "":
        return FailClosedPolicy() if settings.is_production_grade else FailOpenPolicy()
    if override == "closed":
        return FailClosedPolicy()
    if override == "open":
        if settings.is_production_grade:
            raise ConfigurationError(f"Fail-open moderation is not allowed in ENV={settings.ENV}")
        return FailOpenPolicy()
    raise ConfigurationError(f"Unknown MODERATION_FAILURE_POLICY: {settings.MODERATION_FAILURE_POLICY}")


class ModerationService:
    """Runs one moderation call under a timeout and applies the failure policy."""

    def __init__(
        self,
        client: ModerationClient,
        failure_policy: ModerationFailurePolicy,
        timeout_seconds: float = 15.0,
    ):
        self.client = client
        self.failure_policy = failure_policy
        self.timeout_seconds = timeout_seconds

    async def moderate(
        self, data: bytes, mime_type: str, user_id: str, purpose: MediaPurpose
    ) -> ModerationVerdict:
        """Moderate an image; never raises for service failures.

        Args:
            data: Sanitized image bytes
            mime_type: MIME type of ``data``
            user_id: Uploading user
            purpose: Media purpose, sent as context

        Returns:
            ModerationVerdict from the service or from the failure policy
        """
        try:
            verdict = await asyncio.wait_for(
                asyncio.to_thread(self.client.moderate, data, mime_type, purpose),
                timeout=self.timeout_seconds,
            )
        except (ModerationServiceError, asyncio.TimeoutError) as e:
            logger.warning(
                "Moderation call failed",
                extra={
                    "user_id": user_id,
                    "media_purpose": purpose.value,
                    "error_type": type(e).__name__,
                    "error": str(e),
                    "timeout_seconds": self.timeout_seconds,
                },
            )
            return self.failure_policy.on_failure(e, purpose)
        except Exception as e:
            # Client bugs and unexpected SDK payloads still go through the policy
            logger.error(
                "Moderation client raised an unexpected error",
                extra={
                    "user_id": user_id,
                    "media_purpose": purpose.value,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return self.failure_policy.on_failure(e, purpose)

        logger.info(
            "Moderation completed",
            extra={
                "user_id": user_id,
                "media_purpose": purpose.value,
                "decision": verdict.decision.value,
                "category": verdict.category,
                "confidence": verdict.confidence,
                "processing_ms": verdict.processing_ms,
            },
        )
        return verdict
