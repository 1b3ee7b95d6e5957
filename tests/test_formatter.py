import pytest

from invest_manager.analysis.parser import PortfolioAnalysis, Recommendation
from invest_manager.delivery.formatter import (
    MAX_MESSAGE_LENGTH,
    NEUTRAL_GLYPH,
    REMINDER_BLOCK,
    action_glyph,
    chunk_message,
    format_report,
    render_report,
    strip_emphasis,
)
from invest_manager.sources.base import Portfolio, Position


def _sample_portfolio() -> Portfolio:
    return Portfolio(
        positions=(
            Position("SBER", "Sberbank", "share", 10, 250.0, 280.5, 305.0, "RUB"),
            Position("GAZP", "Gazprom", "share", 2.5, 180.0, 160.0, -50.0, "RUB"),
        ),
        currency="RUB",
    )


def _sample_analysis(**overrides: object) -> PortfolioAnalysis:
    defaults: dict[str, object] = {
        "summary": "Balanced portfolio.",
        "recommendations": (
            Recommendation("SBER", "Sberbank", "BUY", "Strong earnings."),
            Recommendation("GAZP", "Gazprom", "SELL", "Weak exports."),
        ),
        "raw_text": "SUMMARY: Balanced portfolio.",
    }
    defaults.update(overrides)
    return PortfolioAnalysis(**defaults)  # type: ignore[arg-type]


# ── Rendering ──


def test_render_report_sections_in_order() -> None:
    text = render_report(_sample_portfolio(), _sample_analysis())

    header = text.index("PORTFOLIO ANALYSIS")
    summary = text.index("Balanced portfolio.")
    totals = text.index("Total Value: 3205.00 RUB")
    recs = text.index("*RECOMMENDATIONS:*")
    assert header < summary < totals < recs
    assert "Expected Yield: 255.00 RUB" in text


def test_render_report_recommendation_lines() -> None:
    text = render_report(_sample_portfolio(), _sample_analysis())

    assert "*SBER (Sberbank)* - 🟢 BUY" in text
    assert "*GAZP (Gazprom)* - 🔴 SELL" in text
    assert "_Strong earnings._" in text


def test_recommendation_without_reason_has_no_empty_italics() -> None:
    analysis = _sample_analysis(recommendations=(Recommendation("SBER", "Sberbank", "HOLD", ""),))
    text = render_report(_sample_portfolio(), analysis)

    assert "__" not in text
    assert "*SBER (Sberbank)* - 🔄 HOLD\n\n" in text


def test_action_glyphs() -> None:
    assert action_glyph("BUY") == "🟢"
    assert action_glyph("SELL") == "🔴"
    assert action_glyph("HOLD") == NEUTRAL_GLYPH
    assert action_glyph("") == NEUTRAL_GLYPH


def test_reminder_block_only_when_flagged() -> None:
    plain = render_report(_sample_portfolio(), _sample_analysis())
    monthly = render_report(_sample_portfolio(), _sample_analysis(is_monthly_reminder=True))

    assert REMINDER_BLOCK not in plain
    assert monthly.endswith(REMINDER_BLOCK)


def test_opportunities_section() -> None:
    analysis = _sample_analysis(
        opportunities=(Recommendation("YNDX", "Yandex", "LONG", "Growth."),)
    )
    text = render_report(_sample_portfolio(), analysis)

    assert "*OPPORTUNITIES:*" in text
    assert "*YNDX (Yandex)* - 📈 LONG" in text
    assert text.index("*RECOMMENDATIONS:*") < text.index("*OPPORTUNITIES:*")


def test_no_opportunities_section_when_empty() -> None:
    text = render_report(_sample_portfolio(), _sample_analysis())
    assert "OPPORTUNITIES" not in text


def test_fallback_appends_raw_advisory() -> None:
    analysis = _sample_analysis(is_fallback=True, raw_text="Free **form** advice.")
    text = render_report(_sample_portfolio(), analysis)

    assert "*FULL ANALYSIS:*" in text
    assert "Free form advice." in text


def test_format_report_single_chunk() -> None:
    chunks = format_report(_sample_portfolio(), _sample_analysis())
    assert chunks == [render_report(_sample_portfolio(), _sample_analysis())]


def test_format_report_splits_long_reports() -> None:
    recs = tuple(
        Recommendation(f"T{i:03d}", f"Name {i}", "HOLD", "x" * 80) for i in range(100)
    )
    analysis = _sample_analysis(recommendations=recs)
    chunks = format_report(_sample_portfolio(), analysis, max_length=1000)

    assert len(chunks) > 1
    assert all(len(c) <= 1000 for c in chunks)
    assert "".join(chunks) == render_report(_sample_portfolio(), analysis)


# ── Chunking ──


def test_chunk_short_text_unchanged() -> None:
    assert chunk_message("hello", 10) == ["hello"]
    assert chunk_message("", 10) == [""]


def test_chunk_exact_length_single_chunk() -> None:
    text = "a" * MAX_MESSAGE_LENGTH
    assert chunk_message(text) == [text]


def test_chunk_prefers_newline_in_second_half() -> None:
    text = "a" * 7 + "\n" + "b" * 10
    chunks = chunk_message(text, 10)

    assert chunks[0] == "a" * 7
    assert chunks[1].startswith("\n")
    assert "".join(chunks) == text


def test_chunk_hard_cut_when_newline_too_early() -> None:
    text = "aa\n" + "b" * 20
    chunks = chunk_message(text, 10)

    assert chunks[0] == "aa\n" + "b" * 7
    assert all(len(c) <= 10 for c in chunks)
    assert "".join(chunks) == text


def test_chunk_hard_cut_without_newlines() -> None:
    text = "x" * 25
    assert chunk_message(text, 10) == ["x" * 10, "x" * 10, "x" * 5]


def test_chunk_is_idempotent() -> None:
    text = "\n".join(f"line {i} " + "y" * (i % 13) for i in range(200))
    chunks = chunk_message(text, 256)

    assert all(len(c) <= 256 for c in chunks)
    assert "".join(chunks) == text
    for chunk in chunks:
        assert chunk_message(chunk, 256) == [chunk]


def test_chunk_rejects_non_positive_length() -> None:
    with pytest.raises(ValueError):
        chunk_message("abc", 0)


def test_strip_emphasis() -> None:
    assert strip_emphasis("*SBER (Sberbank)* - _reason_") == "SBER (Sberbank) - reason"
