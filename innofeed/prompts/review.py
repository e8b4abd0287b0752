"""Retrospective review prompt for existing cases."""

SYSTEM_PROMPT = "You are an insurance innovation quality reviewer."

REVIEW_SCHEMA = """{
  "keep": boolean,
  "reason": string
}"""


def build_review_prompt(
    headline_en: str,
    headline_zh: str,
    innovation_type: str,
    insurance_line: str,
    layer1: str,
) -> str:
    """``layer1`` must already be cut to the review character limit."""
    return f"""Review an existing case in an insurance innovation library.

## Case
Headline (EN): {headline_en}
Headline (ZH): {headline_zh}
Innovation Type: {innovation_type}
Insurance Line: {insurance_line}
Analysis Layer 1 (EN): {layer1}

## Question
Is this a structural shift in insurance logic: a real change in who insures,
what is insured, how it is priced, who sells it or how it pays out?

Keep: newly insurable risks, dynamic IoT/AI pricing, prevention bundled into
cover, parametric or smart-contract payouts, embedded distribution, new
non-insurer players, AI personalization or behavioral incentive loops.

Reject: M&A, market entry without a product innovation, financial results,
regulatory discussion, forecasts or opinion, executive moves, reinsurance and
capital markets deals, vague strategy announcements.

## Output schema
{REVIEW_SCHEMA}"""
