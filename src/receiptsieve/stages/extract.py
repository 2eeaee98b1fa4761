"""Stage 6: context assembly and LLM tool-call extraction with bounded retries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from receiptsieve.ai.base import LLMProvider
from receiptsieve.ai.prompts import (
    CONTEXT_HINTS,
    EXTRACTION_TOOL,
    EXTRACTION_TOOL_NAME,
    SYSTEM_PROMPT,
    USER_PROMPT,
)
from receiptsieve.models import ExtractionContext, RawEmailMessage
from receiptsieve.stages.amounts import extract_all_amounts, find_total_amount, infer_currency
from receiptsieve.stages.language import detect_email_language
from receiptsieve.stages.merchant import (
    MerchantRecognizer,
    is_email_provider_name,
    resolve_merchant_hint,
)
from receiptsieve.stages.noise import strip_forwarding_noise
from receiptsieve.stages.normalize import email_body_text
from receiptsieve.stages.validate import ExtractionValidationError, OrderExtraction, validate_extraction

logger = logging.getLogger(__name__)

AUTO_CORRECTED_NOTE = "[Auto-corrected merchant from subject line]"


@dataclass
class ExtractionOutcome:
    success: bool
    data: OrderExtraction | None = None
    error: str | None = None
    retries: int = 0


class MissingToolCallError(ValueError):
    """The model answered without calling the extraction tool."""


def prepare_context(
    message: RawEmailMessage,
    merchant_hint: str | None = None,
    max_content_chars: int = 15000,
    recognizers: list[MerchantRecognizer] | None = None,
) -> ExtractionContext:
    """Run the deterministic stages for one message. No I/O."""
    normalized = email_body_text(message)
    content = strip_forwarding_noise(normalized.text)
    if len(content) > max_content_chars:
        content = content[:max_content_chars]

    amounts = extract_all_amounts(content)
    return ExtractionContext(
        message=message,
        normalized=normalized,
        content=content,
        language=detect_email_language(content),
        amounts=amounts,
        possible_total=find_total_amount(content, amounts),
        merchant_hint=resolve_merchant_hint(
            message.subject, message.sender, explicit_hint=merchant_hint, recognizers=recognizers
        ),
    )


def build_context_hints(context: ExtractionContext) -> str:
    lines = []
    if context.merchant_hint:
        lines.append(
            f'MERCHANT HINT: "{context.merchant_hint.name}" - USE THIS AS THE MERCHANT NAME '
            f"(source: {context.merchant_hint.source.value})"
        )
    lines.append(f"- Detected language: {context.language.value}")
    total = context.possible_total
    if total is not None:
        lines.append(
            f"- Possible total found: {total.raw} ({total.amount} {total.currency or 'unknown currency'})"
        )
    if context.amounts:
        lines.append(f"- Found {len(context.amounts)} currency amounts in email")
    if context.message.has_attachment:
        lines.append(f"- Email has attachment: {context.message.attachment_type or 'unknown type'}")
    else:
        lines.append("- No attachments")
    return CONTEXT_HINTS.format(lines="\n".join(lines))


def build_user_prompt(context: ExtractionContext) -> str:
    return USER_PROMPT.format(
        subject=context.message.subject,
        content=context.content,
        context_hints=build_context_hints(context),
        tool_name=EXTRACTION_TOOL_NAME,
    )


def apply_corrections(payload: Any, context: ExtractionContext) -> Any:
    """Fix the mistakes models commonly make before validating.

    A provider name as merchant is replaced by the hint, a missing merchant
    is filled from the hint, and a missing currency is inferred.
    Anything but a dict is returned untouched for the validator to reject.
    """
    if not isinstance(payload, dict):
        return payload
    data = dict(payload)
    hint = context.merchant_hint
    merchant = data.get("merchant_name") or ""
    if not isinstance(merchant, str):
        merchant = str(merchant)

    if hint and merchant and is_email_provider_name(merchant):
        logger.info("Replacing provider merchant %r with hint %r", merchant, hint.name)
        data["merchant_name"] = hint.name
        notes = data.get("extraction_notes") or ""
        data["extraction_notes"] = f"{notes} {AUTO_CORRECTED_NOTE}".strip()
        data["needs_review"] = True
    elif hint and len(merchant.strip()) < 2:
        data["merchant_name"] = hint.name
        data["needs_review"] = True

    if data.get("total_amount") and not data.get("currency"):
        inferred = infer_currency(context.language, context.content)
        if inferred:
            data["currency"] = inferred

    return data


class ExtractionOrchestrator:
    """Call the provider with the extraction tool and validate what comes back."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str | None = None,
        max_retries: int = 2,
        max_tokens: int = 4096,
        strict: bool = False,
    ):
        self.provider = provider
        self.model = model
        self.max_retries = max_retries
        self.max_tokens = max_tokens
        self.strict = strict

    def extract(self, context: ExtractionContext) -> ExtractionOutcome:
        """Extract and validate, retrying only on schema problems.

        The same prompt is sent on every attempt. A provider exception ends
        the extraction at once as a failure.
        """
        messages = [{"role": "user", "content": build_user_prompt(context)}]
        retries = 0
        last_error: str | None = None

        while retries <= self.max_retries:
            try:
                response = self.provider.chat(
                    messages,
                    max_tokens=self.max_tokens,
                    system_prompt=SYSTEM_PROMPT,
                    tools=[EXTRACTION_TOOL],
                    model=self.model,
                )
            except Exception as e:
                logger.warning("Extraction call failed for %s: %s", context.message.id, e)
                return ExtractionOutcome(success=False, error=f"{type(e).__name__}: {e}", retries=retries)

            try:
                call = response.tool_call(EXTRACTION_TOOL_NAME)
                if call is None:
                    raise MissingToolCallError(f"model did not call {EXTRACTION_TOOL_NAME}")
                data = validate_extraction(apply_corrections(call.input, context), strict=self.strict)
            except (ExtractionValidationError, MissingToolCallError) as e:
                last_error = f"Validation failed: {e}"
                logger.info("Attempt %d for %s rejected: %s", retries + 1, context.message.id, e)
                retries += 1
                continue

            return ExtractionOutcome(success=True, data=data, retries=retries)

        return ExtractionOutcome(success=False, error=last_error or "Max retries exceeded", retries=retries)
