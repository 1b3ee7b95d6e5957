import re

from invest_manager.analysis.parser import (
    BUY,
    LONG,
    SELL,
    SHORT,
    PortfolioAnalysis,
)
from invest_manager.sources.base import Portfolio

MAX_MESSAGE_LENGTH = 4096

ACTION_GLYPHS = {BUY: "🟢", SELL: "🔴", LONG: "📈", SHORT: "📉"}
NEUTRAL_GLYPH = "🔄"

REMINDER_BLOCK = (
    "\n⚠️ *REMINDER* ⚠️\n"
    "Don't forget to add funds and redistribute your portfolio this month!\n"
)

_EMPHASIS_RE = re.compile(r"[*_]")


def action_glyph(action: str) -> str:
    return ACTION_GLYPHS.get(action, NEUTRAL_GLYPH)


def render_report(portfolio: Portfolio, analysis: PortfolioAnalysis) -> str:
    parts = [
        "📊 *PORTFOLIO ANALYSIS* 📊\n\n",
        "*SUMMARY:*\n",
        f"{analysis.summary}\n\n",
        "*PORTFOLIO OVERVIEW:*\n",
        f"Total Value: {portfolio.total_value:.2f} {portfolio.currency}\n",
        f"Expected Yield: {portfolio.expected_yield:.2f} {portfolio.currency}\n\n",
        "*RECOMMENDATIONS:*\n\n",
    ]
    for rec in analysis.recommendations:
        parts.append(f"*{rec.ticker} ({rec.name})* - {action_glyph(rec.action)} {rec.action}\n")
        if rec.reason:
            parts.append(f"_{rec.reason}_\n")
        parts.append("\n")

    if analysis.opportunities:
        parts.append("*OPPORTUNITIES:*\n\n")
        for opp in analysis.opportunities:
            label = f"{opp.ticker} ({opp.name})" if opp.name else opp.ticker
            parts.append(f"*{label}* - {action_glyph(opp.action)} {opp.action}\n")
            if opp.reason:
                parts.append(f"_{opp.reason}_\n")
            parts.append("\n")

    if analysis.is_fallback and analysis.raw_text.strip():
        parts.append("*FULL ANALYSIS:*\n")
        parts.append(f"{strip_emphasis(analysis.raw_text).strip()}\n")

    if analysis.is_monthly_reminder:
        parts.append(REMINDER_BLOCK)

    return "".join(parts)


def format_report(
    portfolio: Portfolio, analysis: PortfolioAnalysis, max_length: int = MAX_MESSAGE_LENGTH
) -> list[str]:
    return chunk_message(render_report(portfolio, analysis), max_length)


def chunk_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split ``text`` into pieces of at most ``max_length`` characters.

    A cut prefers the last newline in the window when it lies in the second
    half of the window; otherwise the window is cut hard. The newline opens the
    next chunk, so joining the chunks gives back the original text.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break
        cut = remaining.rfind("\n", 0, max_length)
        if cut <= 0 or cut < max_length // 2:
            cut = max_length
        chunks.append(remaining[:cut])
        remaining = remaining[cut:]
    return chunks


def strip_emphasis(text: str) -> str:
    return _EMPHASIS_RE.sub("", text)
