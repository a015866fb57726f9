"""Local, deterministic prompt enhancement."""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .base import DEFAULT_FORMAT, PromptFormat

logger = logging.getLogger(__name__)

DOMAIN_EXPERTISE: Dict[str, Dict[str, List[str]]] = {
    "technology": {
        "roles": ["technical writer", "software engineer", "developer advocate"],
        "keywords": ["software", "programming", "code", "developer", "api", "tech", "computing",
                     "digital", "web", "app", "algorithm", "database"],
    },
    "marketing": {
        "roles": ["marketing specialist", "brand strategist", "content marketer"],
        "keywords": ["marketing", "brand", "customer", "audience", "campaign", "product",
                     "conversion", "engagement", "funnel"],
    },
    "business": {
        "roles": ["business strategist", "management consultant", "business analyst"],
        "keywords": ["business", "strategy", "management", "roi", "growth", "efficiency",
                     "process", "organization", "leadership", "stakeholder"],
    },
    "finance": {
        "roles": ["financial analyst", "investment advisor", "economic analyst"],
        "keywords": ["finance", "investment", "money", "economy", "stock", "fund", "budget",
                     "financial", "asset", "wealth", "tax"],
    },
    "healthcare": {
        "roles": ["healthcare specialist", "medical writer", "health educator"],
        "keywords": ["health", "medical", "patient", "doctor", "treatment", "wellness",
                     "diagnosis", "therapy", "clinical", "medicine"],
    },
    "education": {
        "roles": ["education specialist", "learning designer", "curriculum developer"],
        "keywords": ["education", "learning", "teaching", "student", "course", "curriculum",
                     "classroom", "academic", "school", "university"],
    },
    "legal": {
        "roles": ["legal specialist", "compliance advisor", "regulatory consultant"],
        "keywords": ["legal", "law", "regulation", "compliance", "policy", "contract",
                     "legislation", "liability", "attorney", "court"],
    },
    "science": {
        "roles": ["scientific writer", "research specialist", "data scientist"],
        "keywords": ["science", "research", "experiment", "data", "laboratory", "hypothesis",
                     "evidence", "methodology", "analysis", "discovery"],
    },
    "creative": {
        "roles": ["creative writer", "storyteller", "narrative designer"],
        "keywords": ["creative", "story", "art", "design", "visual", "narrative", "fiction",
                     "imagination", "poem"],
    },
}

DEFAULT_ROLE = "content strategist and professional writer"

INTENT_KEYWORDS: Dict[str, List[str]] = {
    "instruct": ["guide", "how to", "steps", "tutorial"],
    "analyze": ["analyze", "examine", "review", "compare"],
    "persuade": ["convince", "persuade", "sell", "pitch"],
    "inspire": ["inspire", "motivate", "encourage"],
    "entertain": ["entertain", "amuse", "funny"],
    "inform": ["explain", "describe", "information", "overview"],
}

FORMAT_INSTRUCTIONS: Dict[PromptFormat, str] = {
    PromptFormat.PARAGRAPH: (
        "Write the response as flowing prose in well-developed paragraphs, "
        "each opening with a clear topic sentence and leading naturally into the next."
    ),
    PromptFormat.BULLET: (
        "Present the response as concise bullet points grouped under short headings, "
        "one idea per bullet, ordered from most to least important."
    ),
    PromptFormat.STRUCTURED: (
        "Organize the response into clearly headed sections: an introduction that frames the topic, "
        "a body that covers each key point with concrete examples, and a conclusion with actionable takeaways."
    ),
    PromptFormat.CONVERSATIONAL: (
        "Use a warm, conversational voice as if talking with a knowledgeable colleague, "
        "with short paragraphs, direct questions to the reader and natural transitions."
    ),
}

STOP_WORDS = {"write", "about", "create", "make", "generate", "with", "that", "this", "please", "some"}

_TOPIC_PREFIX = re.compile(
    r"^(?:please\s+)?(?:write|create|draft|make|generate|prepare|produce|compose|develop|craft)\s+"
    r"(?:(?:a|an|the)\s+)?(?:(?:blog\s+post|article|post|essay|story|guide)\s+)?"
    r"(?:about|on|regarding|for)?\s*",
    re.IGNORECASE,
)
_WORD_LIMIT = re.compile(r"\b(\d+)\s*(words?|chars?|characters?)\b", re.IGNORECASE)


@dataclass
class PromptContext:
    """What the template enhancer learned from a prompt."""

    original: str
    topic: str
    domain: Optional[str]
    role: str
    intent: str
    keywords: List[str] = field(default_factory=list)
    length_limit: Optional[int] = None
    length_unit: str = "words"


def analyze_prompt(text: str) -> PromptContext:
    """Detect domain, intent and topic from the raw prompt."""
    lower = text.lower()
    words = re.findall(r"[a-z][a-z'-]+", lower)

    domain = None
    best_score = 0
    for name, table in DOMAIN_EXPERTISE.items():
        score = sum(1 for keyword in table["keywords"] if keyword in words or (" " in keyword and keyword in lower))
        if score > best_score:
            domain, best_score = name, score

    intent = "inform"
    for name, keywords in INTENT_KEYWORDS.items():
        if any(keyword in lower for keyword in keywords):
            intent = name
            break

    topic = _TOPIC_PREFIX.sub("", text.strip()).strip().strip("\"'")
    if len(topic) < 5:
        topic = text.strip()

    limit_match = _WORD_LIMIT.search(text)
    length_limit = int(limit_match.group(1)) if limit_match else None
    length_unit = "characters" if limit_match and limit_match.group(2).lower().startswith("char") else "words"

    keywords = [w for w in words if len(w) > 3 and w not in STOP_WORDS][:5]
    role = DOMAIN_EXPERTISE[domain]["roles"][0] if domain else DEFAULT_ROLE

    return PromptContext(
        original=text,
        topic=topic,
        domain=domain,
        role=role,
        intent=intent,
        keywords=keywords,
        length_limit=length_limit,
        length_unit=length_unit,
    )


class TemplateEnhancer:
    """Rewrites a prompt with a role, goals and output instructions.

    Used on its own when no LLM provider is configured, and as the source
    of the system prompt when one is.
    """

    async def enhance(self, text: str, format: PromptFormat = DEFAULT_FORMAT) -> str:
        context = analyze_prompt(text)
        logger.debug("Template enhancement: domain=%s intent=%s", context.domain, context.intent)
        return self.render(context, PromptFormat(format))

    def render(self, context: PromptContext, format: PromptFormat) -> str:
        lines = [
            f"You are an experienced {context.role} with deep knowledge of this subject.",
            "",
            f'Create a comprehensive, engaging piece on the following topic: "{context.topic}"',
            "",
            "Requirements:",
            f"- Purpose: {self._intent_goal(context.intent)}",
            "- Support each key point with specific examples, data points or real-world cases.",
            "- Use concrete, precise language and the active voice throughout.",
            "- Offer perspectives and insights beyond surface-level information.",
        ]
        if context.keywords:
            lines.append(f"- Make sure to address: {', '.join(context.keywords)}.")
        if context.length_limit:
            lines.append(f"- Keep the response within {context.length_limit} {context.length_unit}.")
        lines.extend(["", "Format:", FORMAT_INSTRUCTIONS[format]])
        return "\n".join(lines)

    def system_prompt(self, text: str, format: PromptFormat = DEFAULT_FORMAT) -> str:
        """Instructions for an LLM that performs the rewrite itself."""
        context = analyze_prompt(text)
        domain = f" specializing in {context.domain}" if context.domain else ""
        return (
            f"You are an expert prompt engineer{domain}. Rewrite the user's basic prompt into a "
            f"detailed instruction for a large language model. Assign the model the role of an "
            f"experienced {context.role}, state the goal ({self._intent_goal(context.intent)}), "
            f"list concrete requirements and finish with these output instructions: "
            f"{FORMAT_INSTRUCTIONS[PromptFormat(format)]} "
            f"Return only the rewritten prompt, in plain text without markdown."
        )

    @staticmethod
    def _intent_goal(intent: str) -> str:
        return {
            "instruct": "guide the reader step by step to a concrete result",
            "analyze": "examine the subject critically and weigh the evidence",
            "persuade": "build a convincing, well-reasoned case",
            "inspire": "motivate the reader to act",
            "entertain": "engage and delight the reader",
        }.get(intent, "inform the reader clearly and accurately")

    async def close(self) -> None:
        return None
