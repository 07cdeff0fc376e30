"""
AI content generators.
One Anthropic Messages call per content type; the model is asked for JSON
and the reply is parsed and shape-checked before anything is stored.
"""

import json
import logging
import os
import re
from functools import lru_cache
from typing import Optional

import anthropic

from ..models import ContentType
from .errors import GenerationError, ValidationError
from .validation import MIN_TRANSCRIPT_LENGTH


logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

DEFAULT_HASHTAGS = ["#Faith", "#ChristianLiving", "#SundaySermon", "#ChurchOnline"]
DEFAULT_POSTING_SCHEDULE = (
    "Post quotes throughout the week to maximize engagement. "
    "Monday and Wednesday tend to perform well for inspirational content. "
    "Share Stories/Reels on weekends when engagement is higher."
)

JSON_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")


SERMON_NOTES_PROMPT = """You are a pastoral assistant who turns sermon transcripts into fill-in-the-blank sermon notes for a congregation.

Produce notes that:
- Capture 3-5 main theological points accurately
- Give each point 2-4 fill-in-the-blank statements, using "_____" for a 1-3 word blank
- Cite scriptures as "Book Chapter:Verse"
- Stay pastoral, accessible and printable
- Close with discussion questions and practical application points

Respond with JSON only, in exactly this structure:
{
  "title": "Sermon title",
  "main_points": [
    {
      "heading": "Point heading (2-6 words)",
      "fill_in_blanks": [{"statement": "Sentence with _____", "answer": "missing word(s)"}],
      "scriptures": ["Book Chapter:Verse"]
    }
  ],
  "discussion_questions": ["Question?"],
  "application_points": ["Action step"]
}"""

DEVOTIONAL_PROMPT = """You are a Christian writer who turns sermons into 800-1200 word devotional blog posts.

The devotional must:
- Keep the pastor's voice, phrases and illustrations
- Open with a hook, teach in 2-3 sections under <h2> headings, and end with a prayer or reflection
- Weave scripture in naturally and give concrete application steps
- Be SEO friendly: a 50-60 character title, a 140-160 character meta description, short paragraphs

Respond with JSON only:
{
  "title": "Title",
  "meta_description": "Search description",
  "content": "<p>...</p><h2>...</h2><p>...</p>",
  "scripture_references": ["Book Chapter:Verse"],
  "keywords": ["keyword"]
}"""

DISCUSSION_GUIDE_PROMPT = """You are a small group ministry leader who writes 60-90 minute discussion guides for groups of 5-15 people.

Write open-ended questions (how/why, "share about a time when...") that move from observation to interpretation to application.

Respond with JSON only:
{
  "title": "Guide title",
  "icebreaker": "Light opening question",
  "scripture_study": [{"question": "Question about the text", "scripture_reference": "Book Chapter:Verse"}],
  "application_questions": ["Question"],
  "group_activity": "Practical activity",
  "prayer_points": ["Prayer focus"],
  "additional_resources": ["Passage or resource"]
}"""

SOCIAL_MEDIA_PROMPT = """You are a church social media strategist.

Pick 5-6 quotable moments (15-35 words each) that stand on their own without misleading, and adapt each one per platform:
Instagram (short, a few emoji), Facebook (conversational, 2-4 sentences), Twitter/X (under 280 characters),
LinkedIn (professional, growth focused) and a Stories/Reels visual idea.

Respond with JSON only:
{
  "quotes": [
    {
      "text": "Quote",
      "context": "One sentence of context",
      "instagram_caption": "...",
      "facebook_caption": "...",
      "twitter_text": "...",
      "linkedin_post": "...",
      "story_idea": "..."
    }
  ],
  "hashtags": ["#Faith"],
  "posting_schedule_suggestion": "Short weekly plan"
}"""

KIDS_VERSION_PROMPT = """You are a children's ministry teacher who retells sermons for kids aged 5-10.

Keep the sermon's main truth, use short sentences and concrete images, and avoid abstract theology.
Suggest simple activities that work in a classroom or at home, and questions children can answer.

Respond with JSON only:
{
  "title": "Kid-friendly title",
  "age_range": "5-10",
  "simplified_message": "The message in 150-300 simple words",
  "memory_verse": "Short verse with reference",
  "activities": ["Activity"],
  "discussion_questions": ["Question"]
}"""


# content type -> (system prompt, max_tokens, temperature, required keys)
GENERATOR_CONFIG = {
    ContentType.SERMON_NOTES: (SERMON_NOTES_PROMPT, 4096, 0.7, ("title", "main_points")),
    ContentType.DEVOTIONAL: (DEVOTIONAL_PROMPT, 4096, 0.8, ("title", "content", "meta_description")),
    ContentType.DISCUSSION_GUIDE: (
        DISCUSSION_GUIDE_PROMPT, 3072, 0.7,
        ("title", "scripture_study", "application_questions"),
    ),
    ContentType.SOCIAL_MEDIA: (SOCIAL_MEDIA_PROMPT, 4096, 0.8, ("quotes",)),
    ContentType.KIDS_VERSION: (KIDS_VERSION_PROMPT, 3072, 0.7, ("title", "simplified_message")),
}

LIST_KEYS = {"main_points", "scripture_study", "application_questions", "quotes"}


@lru_cache()
def get_anthropic_client() -> anthropic.Anthropic:
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise ValueError("ANTHROPIC_API_KEY must be set")
    return anthropic.Anthropic(api_key=api_key)


def extract_json(text: str) -> dict:
    """
    Pull the JSON object out of a model reply.
    Prefers a ```json fenced block, else the span from the first "{" to the last "}".
    """
    text = (text or "").strip()
    match = JSON_FENCE_PATTERN.search(text)
    if match:
        text = match.group(1).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise GenerationError("Could not find valid JSON in response")

    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise GenerationError("Invalid JSON returned from model", details=str(e))


def validate_output(content_type: ContentType, output: dict) -> dict:
    _, _, _, required = GENERATOR_CONFIG[content_type]
    for key in required:
        value = output.get(key)
        if key in LIST_KEYS:
            if not isinstance(value, list) or (key == "quotes" and not value):
                raise GenerationError(
                    f"Invalid {content_type.value} structure: missing or empty {key}"
                )
        elif not value:
            raise GenerationError(f"Invalid {content_type.value} structure: missing {key}")

    if content_type == ContentType.SOCIAL_MEDIA:
        if not output.get("hashtags"):
            logger.warning("No hashtags in social media response, using defaults")
            output["hashtags"] = list(DEFAULT_HASHTAGS)
        if not output.get("posting_schedule_suggestion"):
            output["posting_schedule_suggestion"] = DEFAULT_POSTING_SCHEDULE

    return output


def build_user_prompt(content_type: ContentType, transcript: str, title: Optional[str]) -> str:
    intro = f'Here is the sermon titled "{title}":' if title else "Here is the sermon transcript:"
    ask = {
        ContentType.SERMON_NOTES: "Generate sermon notes following the specified JSON structure.",
        ContentType.DEVOTIONAL: "Create a devotional blog post in the pastor's voice following the specified structure.",
        ContentType.DISCUSSION_GUIDE: "Create a small group discussion guide following the specified structure.",
        ContentType.SOCIAL_MEDIA: "Create a social media content pack with the most shareable standalone quotes.",
        ContentType.KIDS_VERSION: "Retell this sermon for children following the specified structure.",
    }[content_type]
    return f"{intro}\n\n{transcript}\n\n{ask}"


def convert_to_sermon_notes_content(output: dict) -> dict:
    """
    Reshape raw sermon notes into the stored/exported form:
    sections of points, scriptures first, then fill-in-the-blanks.
    """
    sections = []
    for point in output.get("main_points", []):
        points = [
            {"text": f"📖 {ref}", "blank": False}
            for ref in point.get("scriptures", [])
        ]
        points.extend(
            {"text": fib.get("statement", ""), "blank": True, "answer": fib.get("answer", "")}
            for fib in point.get("fill_in_blanks", [])
        )
        sections.append({"title": point.get("heading", ""), "points": points})

    return {
        "title": output.get("title"),
        "sections": sections,
        "discussion_questions": output.get("discussion_questions", []),
        "application_points": output.get("application_points", []),
    }


class ContentGenerator:
    """Generates one content type at a time from a transcript."""

    def __init__(self, client: Optional[anthropic.Anthropic] = None, model: Optional[str] = None):
        self.client = client or get_anthropic_client()
        self.model = model or os.environ.get("ANTHROPIC_MODEL", DEFAULT_MODEL)

    def generate(self, content_type, transcript: str, title: Optional[str] = None) -> dict:
        """Return the stored form of `content_type` for this transcript."""
        content_type = ContentType(content_type)
        if len((transcript or "").strip()) < MIN_TRANSCRIPT_LENGTH:
            raise ValidationError("Transcript is too short to generate content")

        system_prompt, max_tokens, temperature, _ = GENERATOR_CONFIG[content_type]
        logger.info("Generating %s with %s", content_type.value, self.model)

        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{
                    "role": "user",
                    "content": build_user_prompt(content_type, transcript, title),
                }],
            )
        except anthropic.APIError as e:
            raise GenerationError(f"AI provider error generating {content_type.value}", details=str(e))

        if getattr(response, "stop_reason", None) == "max_tokens":
            logger.warning("%s response truncated at max_tokens", content_type.value)

        text = next(
            (block.text for block in response.content if getattr(block, "type", None) == "text"),
            None,
        )
        if not text:
            raise GenerationError("No text content in model response")

        output = validate_output(content_type, extract_json(text))

        if content_type == ContentType.SERMON_NOTES:
            output = convert_to_sermon_notes_content(output)

        logger.info("Generated %s", content_type.value)
        return output
