"""
PromptLens Backend - Vision Model Prompting & Response Parsing
================================================================

What:  The system instruction sent to remote vision models, and the parser
       that turns their free-form reply into prompt / description / tags.
Who:   Shared by OpenAIAnalyzer and GeminiAnalyzer.

Parsing strategy:
    1. Look for an embedded JSON object ({...}) and read prompt/description/tags
    2. Otherwise fall back to heuristics over the raw text:
       - prompt:      longest sentence over 20 characters
       - description: first sentence between 10 and 100 characters
       - tags:        most frequent non-stopword tokens + fixed vocabulary, max 5
    The fallback never raises; an empty reply still yields default text.
"""

import json
import logging
import re
from collections import Counter
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

BASE_SYSTEM_PROMPT = """You are an expert at analyzing images and creating detailed prompts for AI art generation.

Your task is to:
1. Analyze the provided image in detail
2. Generate a comprehensive prompt that would recreate or enhance this image
3. Provide a brief description of what you see
4. List relevant tags

Please respond in the following JSON format:
{
  "prompt": "detailed prompt for AI art generation",
  "description": "brief description of the image",
  "tags": ["tag1", "tag2", "tag3", "tag4", "tag5"]
}

Focus on:
- Visual elements (colors, lighting, composition)
- Subject matter and objects
- Artistic style and technique
- Mood and atmosphere
- Technical details (if applicable)"""

STYLE_INSTRUCTIONS = {
    "artistic": "Emphasize artistic and creative elements, focusing on style, mood, and creative interpretation.",
    "technical": "Emphasize technical details, precision, and professional documentation aspects.",
    "photographic": "Emphasize photographic qualities, lighting, composition, and camera techniques.",
}

LANGUAGE_INSTRUCTIONS = {
    "en": "Write the prompt, description and tags in English.",
    "zh": "Write the prompt, description and tags in Simplified Chinese.",
}

USER_INSTRUCTION = (
    "Please analyze this image and generate a detailed prompt for AI art generation, "
    "along with a brief description and relevant tags."
)

DEFAULT_PROMPT = "AI-generated artistic prompt based on image analysis"
DEFAULT_DESCRIPTION = "Professional image analysis result"
DEFAULT_JSON_PROMPT = "Generated AI art prompt"
DEFAULT_JSON_DESCRIPTION = "AI-generated image description"
DEFAULT_JSON_TAGS = ["ai", "generated"]

COMMON_TAGS = ["photography", "art", "design", "creative", "visual"]
STOPWORDS = frozenset({"the", "and", "for", "with", "this", "that", "from"})
MAX_FALLBACK_TAGS = 5

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_TOKEN = re.compile(r"\b[a-z]{3,15}\b")


def build_system_prompt(style: Optional[str] = None, language: Optional[str] = None) -> str:
    """
    Four variants: base, artistic, technical, photographic. "creative" and
    None use the base instruction.
    """
    prompt = BASE_SYSTEM_PROMPT
    if style in STYLE_INSTRUCTIONS:
        prompt += "\n\n" + STYLE_INSTRUCTIONS[style]
    if language in LANGUAGE_INSTRUCTIONS:
        prompt += "\n\n" + LANGUAGE_INSTRUCTIONS[language]
    return prompt


def parse_analysis_text(content: Optional[str]) -> Dict[str, Any]:
    """
    Extract prompt, description and tags from a model reply.

    Returns:
        {"prompt": str (non-empty), "description": str, "tags": List[str]}
    """
    content = content or ""
    parsed = _parse_embedded_json(content)
    if parsed is not None:
        return parsed

    logger.debug("No usable JSON in model reply (%d chars), using text heuristics", len(content))
    return {
        "prompt": extract_prompt(content),
        "description": extract_description(content),
        "tags": extract_tags(content),
    }


def _parse_embedded_json(content: str) -> Optional[Dict[str, Any]]:
    match = _JSON_BLOCK.search(content)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None

    prompt = data.get("prompt")
    description = data.get("description")
    tags = data.get("tags")

    if isinstance(tags, list):
        tags = [str(t).strip() for t in tags if str(t).strip()]
    else:
        tags = list(DEFAULT_JSON_TAGS)

    return {
        "prompt": prompt.strip() if isinstance(prompt, str) and prompt.strip() else DEFAULT_JSON_PROMPT,
        "description": (
            description.strip()
            if isinstance(description, str) and description.strip()
            else DEFAULT_JSON_DESCRIPTION
        ),
        "tags": tags,
    }


def _sentences(content: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(content) if s.strip()]


def extract_prompt(content: str) -> str:
    candidates = [s for s in _sentences(content) if len(s) > 20]
    if not candidates:
        return DEFAULT_PROMPT
    return max(candidates, key=len)


def extract_description(content: str) -> str:
    for sentence in _sentences(content):
        if 10 < len(sentence) < 100:
            return sentence
    return DEFAULT_DESCRIPTION


def extract_tags(content: str) -> List[str]:
    words = [w for w in _TOKEN.findall(content.lower()) if w not in STOPWORDS]
    frequent = [word for word, _ in Counter(words).most_common(3)]

    tags: List[str] = []
    for tag in frequent + COMMON_TAGS:
        if tag not in tags:
            tags.append(tag)
    return tags[:MAX_FALLBACK_TAGS]
