from __future__ import annotations

from typing import List, Optional

from .audit import AuditResult

RULE = "=" * 40


def render_report(result: AuditResult, source: Optional[str] = None) -> str:
    """Plain-text report for one audited page."""
    tags = result.tags
    lines: List[str] = [
        "=== SEO AGENT AUDIT REPORT ===",
        RULE,
        "",
        f"Source: {source or result.url}",
        f"Overall Score: {result.score}/100",
        f"Total Issues: {len(result.issues)}",
        f"Auto-Fixed: {result.auto_fix_count}",
        f"Escalated: {result.escalate_count}",
        "",
        "--- ISSUES ---",
        "",
    ]
    for number, issue in enumerate(result.issues, start=1):
        lines += [
            f"{number}. [{issue.severity.value.upper()}] {issue.rule}",
            f"   Current:   {issue.current or '(empty)'}",
            f"   Suggested: {issue.suggested}",
            f"   Action:    {issue.action.value}",
            f"   Reason:    {issue.reason}",
            "",
        ]
    if not result.issues:
        lines += ["No issues found.", ""]

    lines += [
        "--- GENERATED TAGS ---",
        "",
        f"Title:       {tags.title}",
        f"Description: {tags.description}",
        f"Keywords:    {', '.join(tags.keywords) or '(none)'}",
        f"Phrases:     {', '.join(tags.phrases) or '(none)'}",
        f"Canonical:   {tags.canonical}",
        f"OG Title:    {tags.og_title}",
        f"OG Desc:     {tags.og_description}",
        f"OG Image:    {tags.og_image or '(missing)'}",
        "",
        "--- RANKING TIPS ---",
        "",
    ]
    for number, tip in enumerate(tags.tips, start=1):
        lines += [
            f"{number}. [{tip.priority.upper()}] {tip.message}",
            f"   Action: {tip.action}",
        ]

    lines += ["", "--- Generated by SEO Agent ---", ""]
    return "\n".join(lines)
