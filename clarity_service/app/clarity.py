"""
Clarity check and textual enhancement of photographed questions.

Three steps, each a plain request/response exchange with the assistant:

1. detect_image_clarity    - ask the model to grade blur/readability as JSON
2. enhance_image_clarity   - describe the content, then ask for corrected text,
                             a retake recommendation and a confidence score
3. extract_suggested_text  - a best-effort transcription

process_image_with_clarity_check runs 2 and 3 only for poor images. Every
step fails open: assistant or parse errors become defaults and are logged,
never raised. "Enhancement" is a textual judgment; pixels are not touched
and the original bytes are always handed back.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog

from .assistant import VisionAssistant
from .config import Settings, settings
from .parsing import parse_with_fallback
from .schemas import ClarityResult, EnhancementJudgment

log = structlog.get_logger()

CLARITY_PROMPT = """Analyse the clarity and quality of this image, focusing on:
1. Whether the text is clear and readable
2. Whether the image suffers from blur, noise or lighting problems
3. Whether it needs clarity enhancement

Return the analysis strictly in the following JSON format with nothing else:
{
  "isBlurry": true/false,
  "clarityScore": a number from 0 to 100,
  "recommendation": "a concrete recommendation"
}"""

ANALYZE_PROMPT = """Analyse the content of this image in detail, especially the text.
Provide:
1. All visible text in the image, recognised as accurately as possible
2. A description of the layout and structure
3. Any mathematical formulas, charts or special symbols

Answer in a clear format; it will be used to reconstruct the image."""

ENHANCEMENT_PROMPT = """Based on the following analysis of an image, give advice on improving its clarity.

Image content analysis:
{analysis}

Provide:
1. Concrete advice on improving the image clarity
2. If the image is blurry, what the text should be (correct recognition errors)
3. Whether the photo should be retaken

Return format:
{{
  "canEnhance": true/false,
  "suggestedText": "the corrected text",
  "needsRetake": true/false,
  "confidence": 0-100
}}"""

EXTRACT_TEXT_PROMPT = (
    "Recognise all of the text in this image as accurately as possible, including the "
    "question, options and formulas. Where the text is blurry, infer the most likely "
    "content from context."
)

UNPARSED_RECOMMENDATION = "Check complete, image quality looks good"
CHECKED_RECOMMENDATION = "Check complete"
FAILED_RECOMMENDATION = "Check failed, using original image"


@dataclass
class EnhancementResult:
    enhanced_image: bytes
    original_image: bytes
    improvement_score: int
    success: bool
    judgment: EnhancementJudgment = field(default_factory=EnhancementJudgment)


@dataclass
class ProcessOutcome:
    final_image: bytes
    clarity_info: ClarityResult
    enhancement_info: Optional[EnhancementResult] = None
    suggested_text: Optional[str] = None


def clarity_label(score: int) -> str:
    if score >= 80:
        return "clear"
    if score >= 60:
        return "fair"
    return "blurry"


def needs_enhancement(clarity: ClarityResult, cfg: Settings) -> bool:
    return clarity.is_blurry or clarity.clarity_score < cfg.clarity_threshold


async def detect_image_clarity(
    assistant: VisionAssistant,
    image: bytes,
    mime_type: str = "image/jpeg",
    cfg: Optional[Settings] = None,
) -> ClarityResult:
    cfg = cfg or settings
    log.info("clarity_detection_started", mime_type=mime_type, size=len(image))

    try:
        reply = await assistant.ask(CLARITY_PROMPT, image, mime_type)
    except Exception as exc:
        log.error("clarity_detection_failed", err=str(exc), err_type=type(exc).__name__)
        return ClarityResult(
            is_blurry=False,
            clarity_score=cfg.default_clarity_score,
            recommendation=FAILED_RECOMMENDATION,
        )

    # a decoded reply without advice gets a neutral recommendation
    field_defaults = ClarityResult(
        is_blurry=False,
        clarity_score=cfg.default_clarity_score,
        recommendation=CHECKED_RECOMMENDATION,
    )
    fallback = field_defaults.model_copy(update={"recommendation": UNPARSED_RECOMMENDATION})
    result = parse_with_fallback(reply, ClarityResult, field_defaults, fallback)
    log.info("clarity_detected", clarity_score=result.clarity_score, is_blurry=result.is_blurry)
    return result


async def enhance_image_clarity(
    assistant: VisionAssistant,
    image: bytes,
    mime_type: str = "image/jpeg",
    cfg: Optional[Settings] = None,
) -> EnhancementResult:
    cfg = cfg or settings
    log.info("enhancement_started", mime_type=mime_type)

    try:
        analysis = await assistant.ask(ANALYZE_PROMPT, image, mime_type)
        reply = await assistant.ask(ENHANCEMENT_PROMPT.format(analysis=analysis))
    except Exception as exc:
        log.error("enhancement_failed", err=str(exc), err_type=type(exc).__name__)
        return EnhancementResult(
            enhanced_image=image,
            original_image=image,
            improvement_score=0,
            success=False,
        )

    judgment = parse_with_fallback(reply, EnhancementJudgment, EnhancementJudgment())
    log.info(
        "enhancement_analysed",
        can_enhance=judgment.can_enhance,
        confidence=judgment.confidence,
        needs_retake=judgment.needs_retake,
    )

    # no pixel transform happens; the judgment rides along with the original bytes
    return EnhancementResult(
        enhanced_image=image,
        original_image=image,
        improvement_score=judgment.confidence,
        success=judgment.confidence > cfg.enhancement_success_threshold,
        judgment=judgment,
    )


async def extract_suggested_text(
    assistant: VisionAssistant,
    image: bytes,
    mime_type: str = "image/jpeg",
) -> str:
    try:
        text = await assistant.ask(EXTRACT_TEXT_PROMPT, image, mime_type)
    except Exception as exc:
        log.warning("text_extraction_failed", err=str(exc))
        return ""
    return text or ""


async def process_image_with_clarity_check(
    assistant: VisionAssistant,
    image: bytes,
    mime_type: str = "image/jpeg",
    cfg: Optional[Settings] = None,
) -> ProcessOutcome:
    cfg = cfg or settings

    clarity = await detect_image_clarity(assistant, image, mime_type, cfg)
    if not needs_enhancement(clarity, cfg):
        log.info("enhancement_skipped", clarity_score=clarity.clarity_score)
        return ProcessOutcome(final_image=image, clarity_info=clarity)

    log.info("enhancement_required", clarity_score=clarity.clarity_score, is_blurry=clarity.is_blurry)
    enhancement = await enhance_image_clarity(assistant, image, mime_type, cfg)
    suggested_text = await extract_suggested_text(assistant, image, mime_type)

    return ProcessOutcome(
        final_image=enhancement.enhanced_image if enhancement.success else image,
        clarity_info=clarity,
        enhancement_info=enhancement,
        suggested_text=suggested_text,
    )
