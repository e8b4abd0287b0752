"""AI search prompts: query generation and web search."""

SYSTEM_PROMPT = "You are an expert at searching for insurance industry innovation news."

QUERIES_SCHEMA = """{
  "queries": [
    {
      "query": string,
      "language": string,
      "target_matrix_cell": {"innovation_type": "product" | "marketing", "insurance_line": "property" | "health" | "life"} | null,
      "region": string | null,
      "priority": "high" | "medium" | "low"
    }
  ]
}"""

RESULTS_SCHEMA = """{
  "results": [
    {"title": string, "url": string, "snippet": string}
  ]
}"""


def format_coverage_gaps(gaps: list[tuple[str, str, int]]) -> str:
    """Describe under-covered matrix cells as ``(innovation_type, line, count)``."""
    if not gaps:
        return "Good coverage across all cells. Focus on high-impact stories."
    lines = [
        f"- {innovation_type} innovation in {line} insurance (current: {count} cases)"
        for innovation_type, line, count in gaps
    ]
    return "Priority gaps:\n" + "\n".join(lines)


def build_search_queries_prompt(coverage_gaps: str, days: int) -> str:
    return f"""Generate web search queries that find insurance innovation news and cases.

## Coverage gaps
Our matrix is product/marketing x property/health/life. We need cases here:
{coverage_gaps}

## Window
News from the past {days} days.

## Requirements
- Specific enough to return relevant results
- Several languages (English, Chinese, Japanese and others)
- A mix of general, company-specific, region-specific and technology-specific queries

## Output schema
{QUERIES_SCHEMA}

Generate the queries."""


def build_web_search_prompt(query: str, max_results: int = 5) -> str:
    return f"""Search the web for recent news about: "{query}"

Return the top {max_results} most relevant recent results. Every result needs a
real, verifiable URL, preferably published in the last 30 days, and direct
relevance to insurance innovation. Return an empty list if you cannot find
verifiable results.

## Output schema
{RESULTS_SCHEMA}"""
