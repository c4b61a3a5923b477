# adaptive_tools/core/services/execution/retry.py
"""Bounded classify → infer → guide → retry loop for one failed tool call."""

from typing import Optional

from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.core.types import (
    ErrorCategory,
    ErrorClassification,
    RetryContext,
    RetryDecision,
    ToolCallResult,
    ToolDescriptor,
)
from .classifier import ErrorClassifier, parse_retry_after
from .guidance import compose_guidance
from .inferencer import ParameterInferencer, extract_parameter_name
from .transforms import apply_static_transform


class RetryCoordinator:
    """
    Decides what happens after a failure.

    State machine per RetryContext:
        attempting --success--> succeeded
        attempting --terminal--> failed
        attempting --retryable, budget left--> guidance_issued --> attempting
        attempting --budget spent--> failed
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        inferencer: ParameterInferencer,
        transient_retry_delay: Optional[float] = None
    ):
        self.classifier = classifier
        self.inferencer = inferencer
        self.transient_retry_delay = (
            settings.transient_retry_delay_seconds
            if transient_retry_delay is None else transient_retry_delay
        )

    def new_context(self, request, max_attempts: Optional[int] = None) -> RetryContext:
        return RetryContext(
            original_request=request,
            max_attempts=max_attempts or settings.max_tool_attempts
        )

    def handle_success(self, context: RetryContext, result: ToolCallResult) -> ToolCallResult:
        context.record(result)
        context.mark_succeeded()
        if context.attempts > 1:
            logger.info(f"✅ {context.tool_name} succeeded on attempt {context.attempts}/{context.max_attempts}")
        return result.with_attempts(context.attempts)

    async def handle_failure(
        self,
        context: RetryContext,
        result: ToolCallResult,
        user_intent: str = "",
        descriptor: Optional[ToolDescriptor] = None
    ) -> RetryDecision:
        """
        Decide the next step after `result` failed.

        Args:
            context: Retry context of the original call (current attempt already begun)
            result: Failed result of the current attempt
            user_intent: Original user request, used for inference and guidance
            descriptor: Cached schema of the tool, if any

        Returns:
            RetryDecision: final result, immediate retry, or LLM round-trip with guidance
        """
        context.record(result)
        error = result.error or "Unknown error"

        if not context.has_budget:
            logger.warning(
                f"🛑 {context.tool_name} exhausted its retry budget "
                f"({context.attempts}/{context.max_attempts}): {error}"
            )
            return self._fail(context, result)

        classification = await self.classifier.classify(context.tool_name, error, result.error_code)
        if not classification.retryable:
            logger.info(f"❌ {context.tool_name} failed terminally: {classification.reasoning}")
            return self._fail(context, result, classification)

        if classification.category == ErrorCategory.TRANSIENT:
            delay = self.transient_delay(error)
            logger.info(
                f"🔁 {context.tool_name} transient error, retrying same call in {delay}s "
                f"(attempt {context.attempts + 1}/{context.max_attempts})"
            )
            return RetryDecision(
                retry_request=context.current_request,
                retry_delay=delay,
                classification=classification
            )

        transformed = apply_static_transform(context.current_request, error)
        if transformed is not None and transformed.arguments != context.current_request.arguments:
            return RetryDecision(retry_request=transformed, classification=classification)

        return await self._guide(context, result, classification, user_intent, descriptor)

    def transient_delay(self, error: str) -> float:
        """Configured delay, stretched to the server's retry-after hint when it asks for longer."""
        hint = parse_retry_after(error)
        if hint is None:
            return self.transient_retry_delay
        return max(hint, self.transient_retry_delay)

    async def _guide(
        self,
        context: RetryContext,
        result: ToolCallResult,
        classification: ErrorClassification,
        user_intent: str,
        descriptor: Optional[ToolDescriptor]
    ) -> RetryDecision:
        request = context.current_request
        error = result.error or "Unknown error"

        param, value = await self.inferencer.infer_from_error(
            context.tool_name, error, user_intent, descriptor, request.arguments
        )

        missing = param or extract_parameter_name(error)
        if context.guidance_messages and missing and missing == context.last_missing_parameter:
            context.escalation_level += 1
            logger.warning(
                f"⚠️ {context.tool_name}: guidance for '{missing}' was not followed "
                f"(escalation level {context.escalation_level})"
            )
        context.last_missing_parameter = missing

        guidance = compose_guidance(
            tool_name=context.tool_name,
            error_message=error,
            user_intent=user_intent,
            arguments=request.arguments,
            correct_param=param,
            value=value,
            descriptor=descriptor,
            escalation_level=context.escalation_level,
            suggested_fix=classification.suggested_fix
        )

        context.suggested_request = request.with_arguments(guidance.corrected_arguments) if guidance.complete else None
        context.issue_guidance(guidance.message)
        logger.info(
            f"🧭 Guidance issued for {context.tool_name} "
            f"(attempt {context.attempts}/{context.max_attempts}, param={param}, remove={guidance.wrong_parameters})"
        )
        return RetryDecision(
            should_retry_via_llm=True,
            guidance_message=guidance.message,
            classification=classification
        )

    @staticmethod
    def _fail(
        context: RetryContext,
        result: ToolCallResult,
        classification: Optional[ErrorClassification] = None
    ) -> RetryDecision:
        context.mark_failed()
        final = result.with_attempts(context.attempts).with_retry_flag(False)
        return RetryDecision(final_result=final, classification=classification)
