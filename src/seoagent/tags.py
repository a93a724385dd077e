"""Optimized tag generation.

Title and description generation run an ordered chain of strategies. Each
strategy receives a :class:`TagContext` and returns a value or ``None``; the
first value wins and the winning strategy's name is recorded on the TagSet.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from html import escape
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .extract import PageSnapshot
from .keywords import extract_keywords, extract_phrases
from .rules import (
    DESCRIPTION_MAX,
    DESCRIPTION_MIN,
    THIN_CONTENT_WORDS,
    TITLE_MAX,
    TITLE_MIN,
)
from .utils import brand_of, collapse_whitespace, domain_of, title_case, truncate

HEADING_TITLE_RANGE = (15, 50)
PHRASE_TITLE_LIMIT = 58
SENTENCE_RANGE = (20, 120)
SENTENCE_SUFFIX_LIMIT = 110
DESCRIPTION_PADDING = " Visit us today for comprehensive information and resources."
COMPETITIVE_WORDS = 800
MIN_INTERNAL_LINKS = 3


@dataclass(frozen=True)
class RankingTip:
    priority: str
    message: str
    action: str


@dataclass(frozen=True)
class TagSet:
    title: str
    description: str
    keywords: List[str]
    phrases: List[str]
    canonical: str
    og_title: str
    og_description: str
    og_image: str
    schema: str
    html_snippet: str
    tips: List[RankingTip] = field(default_factory=list)
    title_strategy: str = ""
    description_strategy: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["tips"] = [asdict(t) for t in self.tips]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TagSet":
        return cls(
            title=data.get("title", ""),
            description=data.get("description", ""),
            keywords=list(data.get("keywords", [])),
            phrases=list(data.get("phrases", [])),
            canonical=data.get("canonical", ""),
            og_title=data.get("og_title", ""),
            og_description=data.get("og_description", ""),
            og_image=data.get("og_image", ""),
            schema=data.get("schema", ""),
            html_snippet=data.get("html_snippet", ""),
            tips=[RankingTip(**t) for t in data.get("tips", [])],
            title_strategy=data.get("title_strategy", ""),
            description_strategy=data.get("description_strategy", ""),
        )


@dataclass(frozen=True)
class TagContext:
    page: PageSnapshot
    url: str
    keywords: Sequence[str]
    phrases: Sequence[str]

    @property
    def domain(self) -> str:
        return domain_of(self.url)

    @property
    def brand(self) -> str:
        return brand_of(self.url)


Strategy = Callable[[TagContext], Optional[str]]


def run_chain(strategies: Sequence[Strategy], ctx: TagContext) -> Tuple[str, str]:
    """Return ``(strategy_name, value)`` for the first strategy that matches."""
    for strategy in strategies:
        value = strategy(ctx)
        if value is not None:
            return strategy.__name__, value
    raise LookupError("No strategy produced a value")


# ─── Title strategies ────────────────────────────────────────────────


def reuse_existing_title(ctx: TagContext) -> Optional[str]:
    title = ctx.page.title
    if title and TITLE_MIN <= len(title) <= TITLE_MAX:
        return title
    return None


def heading_with_brand(ctx: TagContext) -> Optional[str]:
    h1s = ctx.page.h1s
    h1 = h1s[0] if h1s else ""
    lo, hi = HEADING_TITLE_RANGE
    if h1 and lo <= len(h1) <= hi:
        return f"{h1} | {ctx.brand}"
    return None


def phrase_with_keywords(ctx: TagContext) -> Optional[str]:
    if not ctx.phrases:
        return None
    title = title_case(ctx.phrases[0])
    if len(ctx.keywords) > 1:
        title += f" — {title_case(ctx.keywords[0])} & {title_case(ctx.keywords[1])}"
    if len(title) <= PHRASE_TITLE_LIMIT:
        return f"{title} | {ctx.brand}"
    return truncate(title, 60)


def keyword_triplet(ctx: TagContext) -> Optional[str]:
    if len(ctx.keywords) < 3:
        return None
    return f"{title_case(' '.join(ctx.keywords[:3]))} — {ctx.brand}"


def brand_fallback(ctx: TagContext) -> Optional[str]:
    return f"{ctx.brand} — Your Trusted Source"


TITLE_STRATEGIES: Tuple[Strategy, ...] = (
    reuse_existing_title,
    heading_with_brand,
    phrase_with_keywords,
    keyword_triplet,
    brand_fallback,
)


# ─── Description strategies ──────────────────────────────────────────


def reuse_existing_description(ctx: TagContext) -> Optional[str]:
    desc = ctx.page.description
    if desc and DESCRIPTION_MIN <= len(desc) <= DESCRIPTION_MAX:
        return desc
    return None


def candidate_sentences(body_text: str) -> List[str]:
    lo, hi = SENTENCE_RANGE
    sentences = (s.strip() for s in re.split(r"[.!?]+", collapse_whitespace(body_text)))
    return [s for s in sentences if lo < len(s) < hi]


def keyword_rich_sentence(ctx: TagContext) -> Optional[str]:
    best, best_score = "", 0
    for sentence in candidate_sentences(ctx.page.body_text):
        lower = sentence.lower()
        score = sum(1 for kw in ctx.keywords if kw in lower)
        if score > best_score:
            best, best_score = sentence, score
    if not best:
        return None
    if len(best) < SENTENCE_SUFFIX_LIMIT and len(ctx.keywords) > 2:
        best += f". Discover {', '.join(ctx.keywords[:3])} and more."
    return best


def phrase_summary(ctx: TagContext) -> Optional[str]:
    if not ctx.phrases:
        return None
    desc = f"Explore {', '.join(ctx.phrases[:2])}. "
    if len(ctx.keywords) > 2:
        desc += f"Learn about {', '.join(ctx.keywords[:4])}."
    return desc


def domain_summary(ctx: TagContext) -> Optional[str]:
    desc = f"Discover everything about {ctx.domain}."
    if ctx.keywords:
        desc += f" Learn about {', '.join(ctx.keywords)}."
    return desc


DESCRIPTION_STRATEGIES: Tuple[Strategy, ...] = (
    reuse_existing_description,
    keyword_rich_sentence,
    phrase_summary,
    domain_summary,
)


def fit_description(desc: str) -> str:
    if len(desc) > DESCRIPTION_MAX:
        desc = truncate(desc, DESCRIPTION_MAX)
    if len(desc) < DESCRIPTION_MIN:
        desc += DESCRIPTION_PADDING
    return desc


def _context(page: PageSnapshot, url: str, keyword_count: int, phrase_count: int) -> TagContext:
    return TagContext(
        page=page,
        url=url,
        keywords=extract_keywords(page.body_text, keyword_count),
        phrases=extract_phrases(page.body_text, phrase_count),
    )


def generate_title(page: PageSnapshot, url: Optional[str] = None) -> str:
    return run_chain(TITLE_STRATEGIES, _context(page, url or page.url, 5, 3))[1]


def generate_description(page: PageSnapshot, url: Optional[str] = None) -> str:
    _, desc = run_chain(DESCRIPTION_STRATEGIES, _context(page, url or page.url, 6, 3))
    return fit_description(desc)


# ─── Schema, snippet and tips ────────────────────────────────────────


def build_schema(page: PageSnapshot, title: str, description: str, canonical: str) -> str:
    if page.structured_data:
        obj = page.structured_data[0]
    else:
        obj = {
            "@context": "https://schema.org",
            "@type": "WebPage",
            "name": title,
            "description": description,
            "url": canonical,
        }
    return json.dumps(obj, indent=2, ensure_ascii=False)


def build_html_snippet(
    title: str,
    description: str,
    keywords: Sequence[str],
    canonical: str,
    og_title: str,
    og_description: str,
    og_image: str,
    schema: str,
) -> str:
    def q(value: str) -> str:
        return escape(value, quote=True)

    if og_image:
        og_image_line = f'<meta property="og:image" content="{q(og_image)}" />'
    else:
        og_image_line = "<!-- Add og:image for social sharing -->"
    return "\n".join(
        [
            f"<title>{escape(title, quote=False)}</title>",
            f'<meta name="description" content="{q(description)}" />',
            f'<meta name="keywords" content="{q(", ".join(keywords))}" />',
            f'<link rel="canonical" href="{q(canonical)}" />',
            "",
            "<!-- Open Graph -->",
            '<meta property="og:type" content="website" />',
            f'<meta property="og:title" content="{q(og_title)}" />',
            f'<meta property="og:description" content="{q(og_description)}" />',
            f'<meta property="og:url" content="{q(canonical)}" />',
            og_image_line,
            "",
            "<!-- Twitter Card -->",
            '<meta name="twitter:card" content="summary_large_image" />',
            f'<meta name="twitter:title" content="{q(og_title)}" />',
            f'<meta name="twitter:description" content="{q(og_description)}" />',
            "",
            "<!-- Structured Data -->",
            '<script type="application/ld+json">',
            schema,
            "</script>",
        ]
    )


def ranking_tips(page: PageSnapshot, keywords: Sequence[str]) -> List[RankingTip]:
    tips: List[RankingTip] = []
    words = page.word_count

    if words < THIN_CONTENT_WORDS:
        tips.append(
            RankingTip(
                "high",
                f"Content is thin ({words} words). Aim for 800-1500 words for better rankings.",
                "Add comprehensive content covering: " + ", ".join(keywords[:4]),
            )
        )
    elif words < COMPETITIVE_WORDS:
        tips.append(
            RankingTip(
                "medium",
                f"Content length is OK ({words} words) but could be stronger.",
                "Consider expanding to 1000+ words for competitive keywords.",
            )
        )

    if not page.h1s:
        primary = keywords[0] if keywords else "your main topic"
        tips.append(
            RankingTip(
                "high",
                "Missing H1 tag — this is the most important on-page heading for SEO.",
                f'Add an H1 that includes your primary keyword: "{primary}"',
            )
        )

    if not page.h2s and words > 200:
        sections = ", ".join(f'"{k}"' for k in keywords[:3])
        tips.append(
            RankingTip(
                "medium",
                "No H2 subheadings found. Structure content with H2s for better readability and SEO.",
                f"Add H2 sections for: {sections}",
            )
        )

    internal = len(page.internal_links)
    if internal < MIN_INTERNAL_LINKS:
        tips.append(
            RankingTip(
                "medium",
                f"Only {internal} internal link(s). Internal linking boosts rankings.",
                "Add 3-5 internal links to related pages on your site.",
            )
        )

    missing_alt = len(page.images_missing_alt)
    if missing_alt:
        topic = keywords[0] if keywords else "topic"
        tips.append(
            RankingTip(
                "medium",
                f"{missing_alt} image(s) missing alt text. Alt text helps image SEO.",
                f'Add keyword-rich alt text to all images (include "{topic}" where relevant).',
            )
        )

    detected = ", ".join(keywords[:5]) if keywords else "none"
    tips.append(
        RankingTip(
            "info",
            f"Top keywords detected: {detected}",
            "Ensure these appear in your title, H1, first paragraph, and meta description.",
        )
    )
    return tips


def generate_tags(page: PageSnapshot, url: Optional[str] = None) -> TagSet:
    url = url or page.url
    title_strategy, title = run_chain(TITLE_STRATEGIES, _context(page, url, 5, 3))
    description_strategy, description = run_chain(
        DESCRIPTION_STRATEGIES, _context(page, url, 6, 3)
    )
    description = fit_description(description)

    keywords = extract_keywords(page.body_text, 10)
    phrases = extract_phrases(page.body_text, 5)
    canonical = page.canonical or url
    og_title = page.og_title or title
    og_description = page.og_description or description
    og_image = page.og_image
    schema = build_schema(page, title, description, canonical)

    return TagSet(
        title=title,
        description=description,
        keywords=keywords,
        phrases=phrases,
        canonical=canonical,
        og_title=og_title,
        og_description=og_description,
        og_image=og_image,
        schema=schema,
        html_snippet=build_html_snippet(
            title, description, keywords, canonical, og_title, og_description, og_image, schema
        ),
        tips=ranking_tips(page, keywords),
        title_strategy=title_strategy,
        description_strategy=description_strategy,
    )
