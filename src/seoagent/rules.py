"""Rule catalog, evaluation and scoring.

The catalog is a fixed ordered tuple of checks. Each check looks at a
PageSnapshot and either returns a Finding or ``None``; severity and action
belong to the rule itself, not to the finding. Issue ids are assigned in
catalog order starting at 0.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from .extract import PageSnapshot
from .utils import clamp, collapse_whitespace, domain_of, truncate

TITLE_MIN = 30
TITLE_MAX = 60
DESCRIPTION_MIN = 70
DESCRIPTION_MAX = 160
THIN_CONTENT_WORDS = 300

PENALTIES = {
    "critical": 15,
    "warning": 8,
    "info": 3,
}


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class Action(str, Enum):
    AUTO_FIX = "auto-fix"
    ESCALATE = "escalate"


class Finding(NamedTuple):
    name: str
    element: str
    current: str
    suggested: str
    reason: str


@dataclass(frozen=True)
class Issue:
    id: int
    rule: str
    check: str
    severity: Severity
    action: Action
    element: str
    current: str
    suggested: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        data["action"] = self.action.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        return cls(
            id=int(data["id"]),
            rule=data["rule"],
            check=data.get("check", ""),
            severity=Severity(data["severity"]),
            action=Action(data["action"]),
            element=data.get("element", ""),
            current=data.get("current", ""),
            suggested=data.get("suggested", ""),
            reason=data.get("reason", ""),
        )


Check = Callable[[PageSnapshot], Optional[Finding]]


@dataclass(frozen=True)
class Rule:
    key: str
    severity: Severity
    action: Action
    check: Check


def _with_length(text: str) -> str:
    return f"{text} ({len(text)} chars)"


def check_missing_title(page: PageSnapshot) -> Optional[Finding]:
    if page.title:
        return None
    domain = domain_of(page.url)
    h1s = page.h1s
    suggested = f"{h1s[0]} | {domain}" if h1s and h1s[0] else f"{domain} — Official Website"
    return Finding(
        "Missing Meta Title",
        "<title>",
        "",
        suggested,
        "No <title> tag found. Search engines use this as the primary heading in results.",
    )


def check_title_length(page: PageSnapshot) -> Optional[Finding]:
    title = page.title
    if not title:
        return None
    if len(title) > TITLE_MAX:
        return Finding(
            "Meta Title Too Long",
            "<title>",
            _with_length(title),
            truncate(title, TITLE_MAX),
            f"Title exceeds {TITLE_MAX} characters and will be truncated in search results.",
        )
    if len(title) < TITLE_MIN:
        return Finding(
            "Meta Title Too Short",
            "<title>",
            _with_length(title),
            f"{title} | {domain_of(page.url)}",
            f"Title is under {TITLE_MIN} characters. Longer titles perform better in search.",
        )
    return None


def _lead_sentences(body_text: str) -> str:
    text = collapse_whitespace(body_text)
    return ".".join(text.split(".")[:2])[:155].strip()


def check_missing_description(page: PageSnapshot) -> Optional[Finding]:
    if page.description:
        return None
    lead = _lead_sentences(page.body_text)
    if lead:
        suggested = lead + "."
    else:
        suggested = (
            f"Discover everything about {domain_of(page.url)}. "
            "Visit us today for more information."
        )
    return Finding(
        "Missing Meta Description",
        '<meta name="description">',
        "",
        suggested,
        "No meta description found. This is a key ranking signal and click-through driver.",
    )


def check_description_length(page: PageSnapshot) -> Optional[Finding]:
    desc = page.description
    if not desc:
        return None
    if len(desc) > DESCRIPTION_MAX:
        return Finding(
            "Meta Description Too Long",
            '<meta name="description">',
            _with_length(desc),
            truncate(desc, DESCRIPTION_MAX),
            f"Description exceeds {DESCRIPTION_MAX} characters and will be truncated.",
        )
    if len(desc) < DESCRIPTION_MIN:
        return Finding(
            "Meta Description Too Short",
            '<meta name="description">',
            _with_length(desc),
            desc + " Learn more about our offerings and discover what makes us stand out.",
            f"Description is under {DESCRIPTION_MIN} characters. "
            "Longer descriptions improve click-through rates.",
        )
    return None


def check_h1_count(page: PageSnapshot) -> Optional[Finding]:
    h1s = page.h1s
    if not h1s:
        return Finding(
            "Missing H1 Tag",
            "<h1>",
            "No H1 found",
            "Add a single, descriptive H1 that matches the page topic",
            "H1 is the primary heading for SEO. "
            "Cannot auto-generate — requires human judgment on content.",
        )
    if len(h1s) > 1:
        quoted = '", "'.join(h1s)
        return Finding(
            "Multiple H1 Tags",
            "<h1>",
            f'{len(h1s)} H1 tags: "{quoted}"',
            "Keep only one H1 tag per page",
            "Multiple H1s confuse search engines about the page topic. "
            "Human must decide which to keep.",
        )
    return None


def check_heading_hierarchy(page: PageSnapshot) -> Optional[Finding]:
    headings = page.headings
    for prev, cur in zip(headings, headings[1:]):
        if cur.level - prev.level > 1:
            return Finding(
                "Broken Heading Hierarchy",
                f"<h{cur.level}>",
                f"H{prev.level} → H{cur.level} (skipped level)",
                "Use sequential heading levels (H1 → H2 → H3)",
                "Skipping heading levels hurts accessibility and SEO structure. "
                "Human must restructure content.",
            )
    return None


def check_image_alt(page: PageSnapshot) -> Optional[Finding]:
    missing = page.images_missing_alt
    if not missing:
        return None
    return Finding(
        "Images Missing Alt Text",
        "<img>",
        f"{len(missing)} image(s) have no alt text",
        'Add descriptive alt text to each image (e.g., "Product photo of blue widget")',
        "Alt text improves accessibility and image search rankings.",
    )


def check_open_graph(page: PageSnapshot) -> Optional[Finding]:
    if page.og_title and page.og_description:
        return None
    missing = [
        name
        for name, value in (
            ("og:title", page.og_title),
            ("og:description", page.og_description),
            ("og:image", page.og_image),
        )
        if not value
    ]
    return Finding(
        "Missing Open Graph Tags",
        '<meta property="og:*">',
        "Missing: " + ", ".join(missing),
        f'og:title="{page.title or "Page Title"}" '
        f'og:description="{page.description or "Page description"}"',
        "Open Graph tags control how your page appears when shared on social media.",
    )


def check_canonical(page: PageSnapshot) -> Optional[Finding]:
    if page.canonical:
        return None
    return Finding(
        "Missing Canonical URL",
        '<link rel="canonical">',
        "Not set",
        f'<link rel="canonical" href="{page.url}" />',
        "Canonical URL prevents duplicate content issues and consolidates link equity.",
    )


def check_thin_content(page: PageSnapshot) -> Optional[Finding]:
    if page.word_count >= THIN_CONTENT_WORDS:
        return None
    return Finding(
        "Thin Content",
        "<body>",
        f"{page.word_count} words",
        f"Expand content to {THIN_CONTENT_WORDS}+ words with relevant, high-quality information",
        f"Pages with fewer than {THIN_CONTENT_WORDS} words may rank poorly. "
        "Content expansion requires human writing.",
    )


def check_schema(page: PageSnapshot) -> Optional[Finding]:
    if page.structured_data:
        return None
    suggested = json.dumps(
        {
            "@context": "https://schema.org",
            "@type": "WebPage",
            "name": page.title or "Page",
            "description": page.description,
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return Finding(
        "Missing Structured Data (Schema)",
        '<script type="application/ld+json">',
        "No schema markup found",
        suggested,
        "Structured data helps search engines understand page content and enables rich snippets.",
    )


def check_twitter_card(page: PageSnapshot) -> Optional[Finding]:
    if page.twitter_card:
        return None
    return Finding(
        "Missing Twitter Card Tags",
        '<meta name="twitter:card">',
        "Not set",
        '<meta name="twitter:card" content="summary_large_image">',
        "Twitter Cards enhance how your links appear on Twitter.",
    )


CATALOG: Tuple[Rule, ...] = (
    Rule("missing-title", Severity.CRITICAL, Action.AUTO_FIX, check_missing_title),
    Rule("title-length", Severity.WARNING, Action.AUTO_FIX, check_title_length),
    Rule("missing-description", Severity.CRITICAL, Action.AUTO_FIX, check_missing_description),
    Rule("description-length", Severity.WARNING, Action.AUTO_FIX, check_description_length),
    Rule("h1-count", Severity.CRITICAL, Action.ESCALATE, check_h1_count),
    Rule("heading-hierarchy", Severity.WARNING, Action.ESCALATE, check_heading_hierarchy),
    Rule("image-alt", Severity.WARNING, Action.AUTO_FIX, check_image_alt),
    Rule("open-graph", Severity.WARNING, Action.AUTO_FIX, check_open_graph),
    Rule("canonical", Severity.INFO, Action.AUTO_FIX, check_canonical),
    Rule("thin-content", Severity.WARNING, Action.ESCALATE, check_thin_content),
    Rule("schema", Severity.INFO, Action.AUTO_FIX, check_schema),
    Rule("twitter-card", Severity.INFO, Action.AUTO_FIX, check_twitter_card),
)


def evaluate(page: PageSnapshot, catalog: Iterable[Rule] = CATALOG) -> List[Issue]:
    issues: List[Issue] = []
    for rule in catalog:
        finding = rule.check(page)
        if finding is None:
            continue
        issues.append(
            Issue(
                id=len(issues),
                rule=finding.name,
                check=rule.key,
                severity=rule.severity,
                action=rule.action,
                element=finding.element,
                current=finding.current,
                suggested=finding.suggested,
                reason=finding.reason,
            )
        )
    return issues


def score_issues(issues: Iterable[Issue]) -> int:
    penalty = sum(PENALTIES[Severity(issue.severity).value] for issue in issues)
    return int(clamp(100 - penalty, 0, 100))
