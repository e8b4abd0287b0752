"""Three-gate screening prompt."""

SYSTEM_PROMPT = (
    "You are a senior insurance industry analyst who screens news for structural "
    "shifts in how insurance works: who insures, what is insured, how it is priced, "
    "who sells it and how it pays out. Incremental improvements are noise. "
    "Respond only with JSON matching the requested schema."
)

OUTPUT_SCHEMA = """{
  "gate1_relevance": boolean,
  "gate1_score": number (0-1),
  "gate1_reason": string,
  "gate2_novelty": boolean,
  "gate2_score": number (0-1),
  "gate2_reason": string,
  "gate3_classification": {
    "innovation_type": "product" | "marketing",
    "insurance_line": "property" | "health" | "life",
    "sentiment": "positive" | "negative"
  } | null,
  "priority_score": number (0-1),
  "rejection_reason": string | null
}"""

GATES = """## Gate 1: structural shift (Delta Logic)
Does the item change one of the five fundamental variables of insurance?
- WHO insures: tech companies, supply chain players, AI agents entering insurance
- WHAT is insured: risks previously considered uninsurable
- HOW it is priced: real-time, IoT, behavioral or sensor-driven pricing
- WHO sells it: embedded in non-insurance platforms, AI agents, communities
- HOW it pays out: parametric triggers, smart contracts, services instead of cash

Reject as noise: coverage limit or deductible tweaks, app UI updates, seasonal
promotions, standard riders, M&A, earnings and funding rounds, regulatory
discussion, forecasts and opinion pieces, executive moves, reinsurance treaties,
conference announcements.

## Gate 2: specificity
Pass only if the item explains what the innovation concretely is (features,
mechanism, partners, technology, measurable outcomes). Vague plans fail.

## Gate 3: classification (only when gates 1 and 2 pass, otherwise null)
innovation_type:
- "product": the shift is in what is insured, how it is priced or how it pays out
- "marketing": the shift is in who sells it, how it reaches customers or who the new players are
insurance_line:
- "property": auto, home, commercial, P&C, cyber, travel
- "health": medical, dental, disability, critical illness, pet, mental health
- "life": life, annuities, pensions, savings
sentiment:
- "positive": launch, traction, promising innovation
- "negative": failure, withdrawal, backlash, regulatory crackdown on the innovation

## Examples
- "Tesla integrates real-time driving-score insurance into vehicle purchase" ->
  gate1 true, gate2 true, {"innovation_type": "marketing", "insurance_line": "property", "sentiment": "positive"}
- "FloodFlash pays parametric flood claims within hours via IoT sensors" ->
  gate1 true, gate2 true, {"innovation_type": "product", "insurance_line": "property", "sentiment": "positive"}
- "Insurer raises home coverage limit by 15%" -> gate1 false, rejection_reason "Incremental parameter change"
- "Insurer plans to explore AI underwriting" -> gate1 true, gate2 false, rejection_reason "Vague plan without detail"
"""


def build_screening_prompt(title: str, content: str, source_url: str, language: str) -> str:
    """Screening prompt. ``content`` must already be cut to the screening character limit."""
    return f"""Decide whether this item is a significant structural shift in insurance.

## Item
Title: {title}
Content: {content}
Source URL: {source_url}
Language: {language}

{GATES}
## Output schema
{OUTPUT_SCHEMA}

Now screen the item."""
