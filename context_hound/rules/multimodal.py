"""Multimodal input rules: images, audio transcripts and OCR text."""

from __future__ import annotations

import re

from context_hound.extractor import PromptUnit
from context_hound.rules.base import RuleMatch, line_match

_USER_SOURCE = r"(?:req|request|ctx|params|body|query|input|user\w*)[.\[]"

_VISION_API_RE = re.compile(
    r"""(?:type["']?\s*:\s*['"`]image_url['"`]|image_url["']?\s*:\s*\{"""
    r"""|inline_data["']?\s*:\s*\{|gpt-4o|gemini.*vision|claude-3)""",
    re.IGNORECASE,
)
_USER_IMAGE_RE = re.compile(
    rf"""(?:url|data)["']?\s*:\s*(?:`[^`]*\$\{{|f["'][^"']*\{{)?{_USER_SOURCE}""",
    re.IGNORECASE,
)
_VISION_CONTEXT_RE = re.compile(
    r"(?:image_url|inline_data|gpt-4o|gemini.*vision|claude-3.*vision|base64.*image"
    r"|image.*base64)",
    re.IGNORECASE,
)
_USER_PATH_READ_RE = re.compile(
    rf"(?:fs\.(?:readFile(?:Sync)?|promises\.readFile)|\bopen)\s*\(\s*{_USER_SOURCE}",
    re.IGNORECASE,
)
_TRANSCRIPTION_API_RE = re.compile(
    r"(?:\.transcriptions\.create\s*\(|openai\.audio\.|whisper|assemblyai|deepgram|revai"
    r"|speechmatics|aws.*transcribe|google.*speech(?:_to_text|2text|Client)"
    r"|stt_result|asr_result)\b",
    re.IGNORECASE,
)
_TRANSCRIPT_IN_MESSAGE_RE = re.compile(
    r"""(?:content["']?\s*:\s*(?:transcription|transcript|transcribed|stt|asr|whisper"""
    r"""|speechResult)\w*"""
    r"""|messages?\s*(?:\??\.)?\s*(?:push|append)\s*\([^)]*(?:transcription|transcript)\w*)""",
    re.IGNORECASE,
)
_TRANSCRIPT_SANITIZED_RE = re.compile(
    r"(?:\.replace\s*\(|sanitize|escape|strip|filter|untrusted|delimiter|<transcript>)",
    re.IGNORECASE,
)
_OCR_API_RE = re.compile(
    r"(?:Tesseract\.createWorker|tesseract\.recognize\s*\(|pytesseract"
    r"|vision\.textDetection\s*\(|vision\.imageAnnotatorClient|textAnnotations\b|documentAi"
    r"|google\.cloud\.vision)",
    re.IGNORECASE,
)
_SYSTEM_ASSIGNMENT_RE = re.compile(
    r"""(?:role["']?\s*:\s*['"`]system['"`]|systemPrompt\s*[+`=]"""
    r"""|\bsystem["']?\s*[:=]\s*f?[`"'])""",
    re.IGNORECASE,
)
_OCR_RESULT_RE = re.compile(
    r"(?:ocr|textAnnotations?|extractedText|recognizedText|imageText|visionResult|ocrOutput)\b",
    re.IGNORECASE,
)

TRANSCRIPT_LOOKBACK = 3
OCR_LOOKBACK = 8


class UserImageToVisionRule:
    rule_id = "VIS-001"
    title = "User-supplied image URL or base64 passed to vision API without validation"
    severity = "critical"
    confidence = "high"
    category = "multimodal"
    remediation = (
        "Validate image URLs against an allowlist of trusted domains before forwarding them to "
        "a vision model, and check MIME type and size of base64 data server-side. Never pass "
        "request values directly as image_url.url or source.data."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind != "code-block" or not _VISION_API_RE.search(unit.text):
            return []
        return [
            line_match(unit, offset, line)
            for offset, line in enumerate(unit.lines)
            if _USER_IMAGE_RE.search(line)
        ]


class UserPathToVisionRule:
    rule_id = "VIS-002"
    title = "User-supplied file path read into vision message (path traversal)"
    severity = "critical"
    confidence = "high"
    category = "multimodal"
    remediation = (
        "Never resolve file paths from user input for vision uploads. Accept file IDs or "
        "pre-signed upload tokens, or resolve the path and assert it stays inside the expected "
        "base directory before reading it."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind != "code-block" or not _VISION_CONTEXT_RE.search(unit.text):
            return []
        return [
            line_match(unit, offset, line)
            for offset, line in enumerate(unit.lines)
            if _USER_PATH_READ_RE.search(line)
        ]


class UnsanitizedTranscriptRule:
    """Flags speech-to-text output placed in a message with no visible sanitising.

    A sanitiser call within the three preceding lines suppresses the finding.
    """

    rule_id = "VIS-003"
    title = "Audio/video transcription output fed into prompt without sanitization"
    severity = "high"
    confidence = "medium"
    category = "multimodal"
    remediation = (
        "Treat transcription output as untrusted external content. Wrap it in delimiters "
        'labelled "untrusted transcription", reject instruction-like phrases, limit its length '
        'and insert it only in role "user".'
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind != "code-block" or not _TRANSCRIPTION_API_RE.search(unit.text):
            return []
        lines = unit.lines
        matches: list[RuleMatch] = []
        for offset, line in enumerate(lines):
            if not _TRANSCRIPT_IN_MESSAGE_RE.search(line):
                continue
            lookback = "\n".join(lines[max(0, offset - TRANSCRIPT_LOOKBACK) : offset + 1])
            if not _TRANSCRIPT_SANITIZED_RE.search(lookback):
                matches.append(line_match(unit, offset, line))
        return matches


class OcrInSystemPromptRule:
    rule_id = "VIS-004"
    title = "OCR output interpolated into system instructions"
    severity = "high"
    confidence = "medium"
    category = "multimodal"
    remediation = (
        "OCR text comes from attacker-influenced documents. Never interpolate it into a system "
        "message; place it in the user turn with clear delimiters and strip instruction-like "
        "phrases first."
    )

    def check(self, unit: PromptUnit, file_path: str) -> list[RuleMatch]:
        if unit.kind != "code-block" or not _OCR_API_RE.search(unit.text):
            return []
        lines = unit.lines
        matches: list[RuleMatch] = []
        for offset, line in enumerate(lines):
            if not _SYSTEM_ASSIGNMENT_RE.search(line):
                continue
            window = "\n".join(lines[max(0, offset - OCR_LOOKBACK) : offset + 2])
            if _OCR_RESULT_RE.search(window):
                matches.append(line_match(unit, offset, line))
        return matches


MULTIMODAL_RULES = (
    UserImageToVisionRule(),
    UserPathToVisionRule(),
    UnsanitizedTranscriptRule(),
    OcrInSystemPromptRule(),
)
