import json
import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from core.entities import MAX_COMMENTS_PER_CALL, ClassificationInput, CommentsClassificationInput
from core.errors import ClassifierCallError, ParseError
from core.schemas import ClassificationResult, CommentsClassificationResult
from services.analytics import AnalyticsRecorder
from services.llm import ClassifierResponse, ClassifierService

logger = logging.getLogger(__name__)

COMMENT_SEPARATOR = "\n\n---\n\n"

CALL_FAILED = "Analysis failed"
PARSE_FAILED = "Failed to parse classifier response"
COMMENTS_CALL_FAILED = "Comments analysis failed"
COMMENTS_PARSE_FAILED = "Failed to parse comments classifier response"

_RESPONSE_FORMAT = """Please provide your analysis in the following JSON format:
{{
  "mentioned": boolean,
  "mentionedKeywords": string[],
  "snippet": string,
  "confidence": number,
  "analysis": string
}}

Where:
- "mentioned": true if any of the keywords are mentioned in a buying/interest context, false otherwise
- "mentionedKeywords": array of keywords that were actually mentioned in the {subject}
- "snippet": a short excerpt (1-2 sentences) from the {subject} that contains the relevant mention
- "confidence": a number between 0 and 1 indicating confidence in the analysis
- "analysis": a brief explanation of your reasoning

Focus on identifying:
1. Direct requests to buy products/services{where}
2. Expressions of interest in purchasing{where}
3. Descriptions of needs that could lead to purchases{where}
4. Mentions of specific keywords in relevant contexts{where}

Return ONLY the JSON response, no additional text or explanations."""


def build_text_prompt(text: str, keywords: Sequence[str]) -> str:
    return f"""Analyze the following text and determine if there are any offers on buying or describing interest in the specified keywords.

TEXT: "{text}"

KEYWORDS: [{", ".join(keywords)}]

""" + _RESPONSE_FORMAT.format(subject="text", where="")


def build_comments_prompt(comments: Sequence[str], keywords: Sequence[str]) -> str:
    comments_text = COMMENT_SEPARATOR.join(comments[:MAX_COMMENTS_PER_CALL])

    return f"""Analyze the following comments and determine if there are any offers on buying or describing interest in the specified keywords.

COMMENTS:
"{comments_text}"

KEYWORDS: [{", ".join(keywords)}]

""" + _RESPONSE_FORMAT.format(subject="comments", where=" in comments")


def extract_json_object(raw: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` substring of the response, or None.
    Braces inside JSON strings are ignored.
    """
    start = raw.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False

        for i in range(start, len(raw)):
            ch = raw[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue

            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return raw[start:i + 1]

        # Unbalanced from this brace; try the next one
        start = raw.find("{", start + 1)

    return None


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        value = float(value)
    except OverflowError:
        # JSON integers are unbounded
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, value))


def _coerce_keywords(value: Any, keywords: Sequence[str]) -> List[str]:
    """Keep only requested keywords, in the caller's spelling, without repeats."""
    if not isinstance(value, list):
        return []

    allowed = {k.lower(): k for k in keywords}
    found: List[str] = []
    for kw in value:
        if not isinstance(kw, str):
            continue
        original = allowed.get(kw.strip().lower())
        if original is not None and original not in found:
            found.append(original)
    return found


def _parse_fields(raw: str, keywords: Sequence[str]) -> Dict[str, Any]:
    candidate = extract_json_object(raw)
    if candidate is None:
        raise ParseError("No valid JSON found in response")

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in response: {e}") from e

    return {
        "mentioned": parsed.get("mentioned") if isinstance(parsed.get("mentioned"), bool) else False,
        "mentioned_keywords": _coerce_keywords(parsed.get("mentionedKeywords"), keywords),
        "snippet": parsed.get("snippet") if isinstance(parsed.get("snippet"), str) else "",
        "confidence": _coerce_confidence(parsed.get("confidence")),
        "analysis": parsed.get("analysis") if isinstance(parsed.get("analysis"), str) else "",
    }


def parse_classification_response(
    raw: str,
    keywords: Sequence[str],
    *,
    post_id: Optional[str] = None,
    url: Optional[str] = None,
) -> ClassificationResult:
    return ClassificationResult(**_parse_fields(raw, keywords), post_id=post_id, url=url)


def parse_comments_response(
    raw: str,
    keywords: Sequence[str],
    *,
    post_id: str,
    total_comments: int,
) -> CommentsClassificationResult:
    return CommentsClassificationResult(
        **_parse_fields(raw, keywords),
        post_id=post_id,
        comment_count=total_comments,
        analyzed_comment_count=min(total_comments, MAX_COMMENTS_PER_CALL),
    )


class IntentClassifier:
    """
    Judges buying intent in posts and comment threads with the text classifier.

    The single-item methods raise ClassifierCallError or ParseError. The
    batch methods never raise for an individual item: they substitute a
    "not mentioned" result and keep going, returning one result per input
    in input order.
    """

    def __init__(
        self,
        llm: ClassifierService,
        analytics: Optional[AnalyticsRecorder] = None,
        max_text_length: int = 4000,
    ):
        self.llm = llm
        self.analytics = analytics
        self.max_text_length = max_text_length

    async def _generate(self, prompt: str) -> ClassifierResponse:
        response = await self.llm.generate(prompt)
        logger.debug(f"Classifier responded in {response.latency_ms}ms")
        self._record_usage(response)
        return response

    def _record_usage(self, response: ClassifierResponse) -> None:
        if self.analytics is None or response.usage is None:
            return
        try:
            self.analytics.record_classifier_usage(
                response.usage.prompt_units,
                response.usage.completion_units,
                self.llm.model,
            )
        except Exception as e:
            logger.error(f"Failed to record classifier usage: {e}")

    async def classify_text(self, item: ClassificationInput) -> ClassificationResult:
        item = item.truncated(self.max_text_length)
        response = await self._generate(build_text_prompt(item.text, item.keywords))
        return parse_classification_response(
            response.text, item.keywords, post_id=item.post_id, url=item.url
        )

    async def classify_batch(self, items: Sequence[ClassificationInput]) -> List[ClassificationResult]:
        if not items:
            return []

        logger.info(f"Classifying {len(items)} posts")
        results: List[ClassificationResult] = []

        for item in items:
            try:
                results.append(await self.classify_text(item))
            except ParseError as e:
                logger.warning(f"Unparseable classifier response for post {item.post_id}: {e}")
                results.append(ClassificationResult.failed(PARSE_FAILED, item.post_id, item.url))
            except ClassifierCallError as e:
                logger.error(f"Classifier call failed for post {item.post_id}: {e}")
                results.append(ClassificationResult.failed(CALL_FAILED, item.post_id, item.url))

        return results

    async def classify_comments(self, item: CommentsClassificationInput) -> CommentsClassificationResult:
        response = await self._generate(build_comments_prompt(item.comments, item.keywords))
        return parse_comments_response(
            response.text,
            item.keywords,
            post_id=item.post_id,
            total_comments=item.comment_count,
        )

    async def classify_comments_batch(
        self,
        items: Sequence[CommentsClassificationInput],
    ) -> List[CommentsClassificationResult]:
        if not items:
            return []

        logger.info(f"Classifying comments of {len(items)} posts")
        results: List[CommentsClassificationResult] = []

        for item in items:
            try:
                results.append(await self.classify_comments(item))
            except (ParseError, ClassifierCallError) as e:
                logger.error(f"Comments classification failed for post {item.post_id}: {e}")
                results.append(CommentsClassificationResult(
                    post_id=item.post_id,
                    analysis=COMMENTS_PARSE_FAILED if isinstance(e, ParseError) else COMMENTS_CALL_FAILED,
                    comment_count=item.comment_count,
                    analyzed_comment_count=0,
                ))

        return results
