from invest_manager.sources.base import Article, Portfolio

SYSTEM_PROMPT = """\
You are an investment advisor specializing in Russian stocks.
You will analyze a portfolio and relevant news to provide actionable advice for each position.
For each position, provide a recommendation (BUY/SELL/HOLD) and a brief, easy-to-understand \
explanation.
Additionally, suggest a few trading opportunities: stocks not currently in the portfolio that \
present attractive long or short positions (LONG/SHORT), with a brief explanation.
Use clear language suitable for non-financial experts ("for beginners").
Format your response as:

SUMMARY:
[Overall portfolio assessment and 1-2 key insights]

RECOMMENDATIONS:
[ticker]: [NAME] - [BUY/SELL/HOLD]
Explanation: [1-2 sentences explaining the recommendation]

OPPORTUNITIES:
[ticker]: [NAME] - [LONG/SHORT]
Explanation: [1-2 sentences explaining the opportunity]

Отвечай на русском языке.
Пожалуйста, используйте заголовки строго на английском языке как "SUMMARY:", \
"RECOMMENDATIONS:", and "OPPORTUNITIES:"."""

USER_PROMPT_TEMPLATE = """\
Here is the current portfolio information:

{portfolio}

Recent news about Russia:

{news}

Please provide investment recommendations for each position in the portfolio, and suggest \
trading opportunities (LONG/SHORT) for other relevant stocks.

Отвечай на русском языке."""

MONTHLY_REVIEW_NOTE = (
    "\n\nThis is a monthly review. Please also include a reminder to add funds "
    "and redistribute the portfolio."
)

NO_NEWS = "No recent news available."


def build_user_prompt(portfolio_rendering: str, news_rendering: str, monthly_reminder: bool) -> str:
    prompt = USER_PROMPT_TEMPLATE.format(
        portfolio=portfolio_rendering,
        news=news_rendering or NO_NEWS,
    )
    if monthly_reminder:
        prompt += MONTHLY_REVIEW_NOTE
    return prompt


def render_portfolio(portfolio: Portfolio) -> str:
    lines = [
        f"Total portfolio value: {portfolio.total_value:.2f} {portfolio.currency}",
        f"Expected yield: {portfolio.expected_yield:.2f} {portfolio.currency}",
        "",
        "Positions:",
    ]
    for pos in portfolio.positions:
        lines.extend(
            [
                f"- {pos.ticker} ({pos.name}): {pos.instrument_type}",
                f"  Quantity: {pos.quantity:.2f}",
                f"  Average Price: {pos.average_price:.2f} {pos.currency}",
                f"  Current Price: {pos.current_price:.2f} {pos.currency}",
                f"  Expected Yield: {pos.expected_yield:.2f} {pos.currency}",
                "",
            ]
        )
    return "\n".join(lines)


def render_news(articles: list[Article]) -> str:
    lines: list[str] = []
    for i, article in enumerate(articles, start=1):
        lines.append(f"{i}. {article.title}")
        lines.append(f"   Source: {article.source}")
        if article.published_at is not None:
            lines.append(f"   Date: {article.published_at.strftime('%Y-%m-%d')}")
        if article.description:
            lines.append(f"   Description: {article.description}")
        lines.append(f"   URL: {article.url}")
        lines.append("")
    return "\n".join(lines)
