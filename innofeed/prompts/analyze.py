"""Deep analysis and quality check prompts."""
import json
from typing import Dict, List

SYSTEM_PROMPT = (
    "You are a senior insurance analyst with two decades of experience across global "
    "markets. Your analyses are fact-based, specific (numbers, dates, names), "
    "actionable for insurance professionals and balanced. "
    "Respond only with JSON matching the requested schema."
)

QUALITY_SYSTEM_PROMPT = (
    "You are an editor checking insurance case analyses for factual grounding and "
    "consistency. Respond only with JSON matching the requested schema."
)

POSITIVE_LAYERS = [
    ("What It Is", "the product or service, target customers, problem solved, key features"),
    ("How It Works", "technology, business model, distribution and partners, processes"),
    ("Why It Matters", "what is genuinely new, the market gap, competitive advantage, industry impact"),
    ("Results & Evidence", "quantitative and qualitative outcomes, milestones, metrics to watch"),
    ("Actionable Insights", "lessons for other insurers, prerequisites, pitfalls, market adaptation"),
]

NEGATIVE_LAYERS = [
    ("What Happened", "who was involved, what went wrong, timeline, scale"),
    ("Where Is the Problem", "design, pricing, experience, channel, technology or compliance failure"),
    ("Root Cause", "why it happened: data, models, incentives, governance, external factors"),
    ("Consequences", "financial losses, withdrawals, customer impact, penalties, reputation"),
    ("Lessons & Warnings", "how others avoid it, early warning signs, safer alternatives"),
]

ANALYSIS_SCHEMA = """{
  "headline_en": string (max 100 chars),
  "headline_zh": string (Chinese, max 50 chars),
  "analysis_en": {"layer1": string, "layer2": string, "layer3": string, "layer4": string, "layer5": string},
  "analysis_zh": {"layer1": string, "layer2": string, "layer3": string, "layer4": string, "layer5": string},
  "company_names": string[],
  "quality_notes": string
}"""

QUALITY_SCHEMA = """{
  "overall_pass": boolean,
  "quality_score": number (0-1),
  "issues": [{"check_item": string, "passed": boolean, "issue_description": string | null}],
  "improvement_suggestions": string[],
  "ready_for_publication": boolean
}"""


def layer_names(sentiment: str) -> List[str]:
    layers = NEGATIVE_LAYERS if sentiment == "negative" else POSITIVE_LAYERS
    return [name for name, _ in layers]


def build_analysis_prompt(
    title: str,
    content: str,
    source_urls: List[str],
    company_names: List[str],
    region: str,
    innovation_type: str,
    insurance_line: str,
    sentiment: str,
) -> str:
    """Five-layer analysis prompt, framed as innovation or as warning by sentiment."""
    if sentiment == "negative":
        framing = "insurance failure or warning case"
        layers = NEGATIVE_LAYERS
    else:
        framing = "insurance innovation case"
        layers = POSITIVE_LAYERS

    framework = "\n".join(
        f"Layer {i}: {name} - {focus}" for i, (name, focus) in enumerate(layers, start=1)
    )
    urls = "\n".join(source_urls)
    companies = ", ".join(company_names) or "Unknown"

    return f"""Produce a bilingual five-layer analysis of this {framing}.

## Case
Title: {title}
Content: {content}
Source URLs: {urls}
Company: {companies}
Region: {region}
Innovation Type: {innovation_type}
Insurance Line: {insurance_line}

## Framework
{framework}

English layers run 150-250 words each. Chinese layers are culturally adapted,
not literal translations.

## Output schema
{ANALYSIS_SCHEMA}

Now analyze the case."""


def build_quality_check_prompt(
    headline_en: str,
    headline_zh: str,
    analysis_en: Dict[str, str],
    analysis_zh: Dict[str, str],
    source_urls: List[str],
) -> str:
    urls = "\n".join(source_urls)
    return f"""Review this analysis for quality problems.

## Analysis
Headline EN: {headline_en}
Headline ZH: {headline_zh}
Analysis EN: {json.dumps(analysis_en, ensure_ascii=False, indent=2)}
Analysis ZH: {json.dumps(analysis_zh, ensure_ascii=False, indent=2)}
Source URLs: {urls}

## Checklist
1. Factual support: each layer rests on specific facts
2. Mechanism clarity: layers 2 and 3 explain how it works
3. Source traceability: claims can be traced to the sources
4. Bilingual consistency: both languages carry the same information
5. Source validity: URLs look valid

## Output schema
{QUALITY_SCHEMA}

Now review the analysis."""
