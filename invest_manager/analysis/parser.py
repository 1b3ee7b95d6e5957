"""Turns the free-text advisory into structured recommendations.

The advisory is model output with no enforced schema, so parsing is a
tolerant, line-oriented scan. When no recommendation can be recognised the
parser falls back to a yield-sign heuristic over the known positions instead
of failing, so the caller always has something to deliver.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from invest_manager.sources.base import Position

logger = structlog.get_logger()

BUY = "BUY"
SELL = "SELL"
HOLD = "HOLD"
LONG = "LONG"
SHORT = "SHORT"

PORTFOLIO_ACTIONS = (BUY, SELL, HOLD)
OPPORTUNITY_ACTIONS = (LONG, SHORT)

SUMMARY_MARKER = "SUMMARY:"
RECOMMENDATIONS_MARKERS = ("RECOMMENDATIONS:", "РЕКОМЕНДАЦИИ:")
OPPORTUNITIES_MARKER = "OPPORTUNITIES:"
SECTION_MARKERS = (SUMMARY_MARKER, *RECOMMENDATIONS_MARKERS, OPPORTUNITIES_MARKER)
EXPLANATION_PREFIXES = ("Explanation:", "Объяснение:")

FALLBACK_SUMMARY = "Analysis completed, but could not parse specific recommendations."
FALLBACK_REASON = "Based on current position yield."
EMPTY_SUMMARY = "The advisory response was empty."

_EMPHASIS_RE = re.compile(r"[*_]")
_DASH_RE = re.compile(r"[-–—]")
_LIST_MARKER_RE = re.compile(r"^(?:\d+[.)]|[-•])\s+")


@dataclass(frozen=True)
class Recommendation:
    ticker: str
    name: str
    action: str
    reason: str = ""


@dataclass(frozen=True)
class PortfolioAnalysis:
    summary: str
    recommendations: tuple[Recommendation, ...] = ()
    opportunities: tuple[Recommendation, ...] = ()
    is_monthly_reminder: bool = False
    raw_text: str = ""
    is_fallback: bool = False


def parse_advisory(
    text: str, positions: Sequence[Position], *, monthly_reminder: bool = False
) -> PortfolioAnalysis:
    cleaned = normalize(text)
    if not cleaned.strip():
        logger.warning("advisory_empty")
        return PortfolioAnalysis(
            summary=EMPTY_SUMMARY,
            is_monthly_reminder=monthly_reminder,
            raw_text=text,
            is_fallback=True,
        )

    head, recs_block, opps_block = _split_sections(cleaned)
    summary = _extract_summary(head)
    recommendations = _parse_recommendations(recs_block, positions) if recs_block else []
    opportunities = _parse_opportunities(opps_block) if opps_block else []

    is_fallback = not recommendations
    if is_fallback:
        logger.warning("advisory_parse_fallback", positions=len(positions))
        summary = FALLBACK_SUMMARY
        recommendations = fallback_recommendations(positions)

    return PortfolioAnalysis(
        summary=summary,
        recommendations=tuple(recommendations),
        opportunities=tuple(opportunities),
        is_monthly_reminder=monthly_reminder,
        raw_text=text,
        is_fallback=is_fallback,
    )


def normalize(text: str) -> str:
    """Drop bold/italic delimiters so headings match regardless of emphasis."""
    return _EMPHASIS_RE.sub("", text)


def fallback_recommendations(positions: Sequence[Position]) -> list[Recommendation]:
    recs: list[Recommendation] = []
    for pos in positions:
        action = HOLD
        if pos.expected_yield > 0:
            action = BUY
        elif pos.expected_yield < 0:
            action = SELL
        recs.append(Recommendation(pos.ticker, pos.name, action, FALLBACK_REASON))
    return recs


def _split_sections(text: str) -> tuple[str, str | None, str | None]:
    head = text
    recs_block: str | None = None
    for marker in RECOMMENDATIONS_MARKERS:
        idx = text.find(marker)
        if idx == -1:
            continue
        head = text[:idx]
        start = idx + len(marker)
        end = text.find(OPPORTUNITIES_MARKER, start)
        recs_block = text[start:] if end == -1 else text[start:end]
        break

    opps_block: str | None = None
    idx = text.find(OPPORTUNITIES_MARKER)
    if idx != -1:
        opps_block = text[idx + len(OPPORTUNITIES_MARKER) :]
    return head, recs_block, opps_block


def _is_section_marker(line: str) -> bool:
    return line.startswith(SECTION_MARKERS)


def _extract_summary(head: str) -> str:
    lines = [line.strip() for line in head.splitlines()]
    for i, line in enumerate(lines):
        if not line.startswith(SUMMARY_MARKER):
            continue
        summary = line[len(SUMMARY_MARKER) :].strip()
        if summary:
            return summary
        for following in lines[i + 1 :]:
            if not following:
                continue
            return "" if _is_section_marker(following) else following
        return ""
    return ""


def _ticker_matchers(positions: Sequence[Position]) -> list[tuple[Position, re.Pattern[str]]]:
    # The ticker must be followed by a separator, so "SBER" does not start a
    # recommendation on "SBERP: ..." or on prose that merely begins with it.
    # Tickers go through the same normalization as the text and match in any
    # case.
    return [
        (pos, re.compile(rf"{re.escape(normalize(pos.ticker))}\s*[:\-–—]", re.IGNORECASE))
        for pos in positions
        if pos.ticker
    ]


def _block_lines(block: str) -> list[str]:
    # Models often number or bullet their items: "1. SBER: ..." or "- SBER: ...".
    return [_LIST_MARKER_RE.sub("", line.strip()) for line in block.splitlines()]


def _match_ticker(
    line: str, matchers: list[tuple[Position, re.Pattern[str]]]
) -> tuple[Position, int] | None:
    for pos, pattern in matchers:
        m = pattern.match(line)
        if m:
            return pos, m.end()
    return None


def _find_action(fragment: str, vocabulary: Sequence[str]) -> str:
    # Substring containment, not token isolation: "SELLING" counts as SELL.
    upper = fragment.upper()
    for action in vocabulary:
        if action in upper:
            return action
    return ""


def _strip_explanation(line: str) -> str:
    for prefix in EXPLANATION_PREFIXES:
        if line.startswith(prefix):
            return line[len(prefix) :].strip()
    return line


def _parse_recommendations(block: str, positions: Sequence[Position]) -> list[Recommendation]:
    matchers = _ticker_matchers(positions)
    lines = _block_lines(block)
    recs: list[Recommendation] = []

    i = 0
    while i < len(lines):
        line = lines[i]
        i += 1
        if not line:
            continue
        hit = _match_ticker(line, matchers)
        if hit is None:
            continue

        pos, end = hit
        action = _find_action(line[end:], PORTFOLIO_ACTIONS)

        reason = ""
        j = i
        while j < len(lines) and not lines[j]:
            j += 1
        if (
            j < len(lines)
            and _match_ticker(lines[j], matchers) is None
            and not _is_section_marker(lines[j])
        ):
            reason = _strip_explanation(lines[j])
            i = j + 1

        recs.append(Recommendation(pos.ticker, pos.name, action, reason))
    return recs


def _parse_opportunities(block: str) -> list[Recommendation]:
    lines = _block_lines(block)
    opps: list[Recommendation] = []

    i = 0
    while i < len(lines):
        line = lines[i]
        i += 1
        if not line or line.startswith(EXPLANATION_PREFIXES):
            continue
        dash = _DASH_RE.search(line)
        if dash is None:
            continue

        left = line[: dash.start()].strip()
        ticker, _, name = left.partition(":")
        action = _find_action(line[dash.end() :], OPPORTUNITY_ACTIONS)

        reason = ""
        if i < len(lines) and lines[i].startswith(EXPLANATION_PREFIXES):
            reason = _strip_explanation(lines[i])
            i += 1

        opps.append(Recommendation(ticker.strip(), name.strip(), action, reason))
    return opps
