"""Prompt templates for MiCA compliance analysis."""

from typing import Dict, Mapping, Optional, Sequence
from uuid import UUID

from mica_checker.schemas.compliance import (
    AnalysisResult,
    OrderedChunk,
    RequirementItem,
    ScoringRegime,
)

SYSTEM_PROMPT = """
You are an expert compliance analyst specializing in MiCA (Markets in Crypto-Assets)
regulation (EU) 2023/1114.

You have deep knowledge of:
- MiCA whitepaper disclosure requirements (Annexes I, II and III)
- Legal opinions on the classification of crypto-assets
- Regulatory risk assessment

You MUST base every assessment ONLY on the document excerpts provided.
Never assume that information exists when it is not in the excerpts.
Always answer with the JSON array requested and nothing else.
""".strip()

COMPLIANCE_ANALYSIS_PROMPT = """
Evaluate whether each of the following {requirement_count} MiCA requirements is met by the document.

For each requirement:
1. Decide whether the information is FOUND, NEEDS_CLARIFICATION or MISSING
   (use NOT_APPLICABLE only when the requirement clearly does not apply to this crypto-asset)
2. Give a coverage score from 0 to 100
3. Explain your reasoning
4. Quote the relevant evidence from the document, if any

EVALUATION CRITERIA:
- FOUND (80-100): the information is clearly present and comprehensive
- NEEDS_CLARIFICATION (40-79): the information is partially present, incomplete or unclear
- MISSING (0-39): the information is absent or completely inadequate

=== REQUIREMENTS ===
{requirements_list}

=== DOCUMENT EXCERPTS ===
{document_content}

Return ONLY a JSON array with exactly {requirement_count} objects, one per requirement,
in the same order as the requirements above:
[
  {{
    "requirement_id": "<id shown for the requirement>",
    "status": "FOUND|NEEDS_CLARIFICATION|MISSING|NOT_APPLICABLE",
    "coverage_score": 0,
    "reasoning": "Clear explanation of your assessment",
    "evidence_snippets": ["exact quotes from the document"]
  }}
]
""".strip()

LEGAL_ANALYSIS_PROMPT = """
You are analyzing a legal opinion for MiCA regulatory risk. Answer each of the following
{requirement_count} questions from what the document says.

For each question:
1. Find any information in the document related to the question
2. Choose exactly one answer from the question's scoring logic
3. Set coverage_score to the points the scoring logic assigns to that answer
   (use "Not scored" when the scoring logic says "Not scored")
4. Explain what the document says and why it creates high or low regulatory risk
5. Quote the supporting evidence

HIGH RISK answers: the document confirms the token has characteristics that trigger regulation,
is a security or financial instrument, or shows compliance gaps.
LOW RISK answers: the document confirms the opposite, or shows proper compliance or exemptions.
When the document contains no information about a question, answer the low-risk option and say so.

=== QUESTIONS ===
{requirements_list}

=== DOCUMENT EXCERPTS ===
{document_content}

Return ONLY a JSON array with exactly {requirement_count} objects, one per question,
in the same order as the questions above:
[
  {{
    "requirement_id": "<id shown for the question>",
    "selected_answer": "Yes",
    "coverage_score": 1000,
    "status": "FOUND|NEEDS_CLARIFICATION|MISSING|NOT_APPLICABLE",
    "reasoning": "What the document says and the resulting risk",
    "evidence_snippets": ["exact quotes from the document"]
  }}
]
""".strip()

REGENERATE_PREAMBLE = """
The requirements below were previously assessed as missing or unclear. Re-read the
document excerpts carefully, which may include more of the document than before, and
reassess each requirement from scratch. The previous assessment is shown for reference
only; change it whenever the excerpts support a different conclusion.
""".strip()


def render_prompt(template: str, **values: object) -> str:
    """Fill ``{name}`` placeholders without interpreting braces in the values."""
    rendered = template.replace("{{", "\x00").replace("}}", "\x01")
    for key, value in values.items():
        rendered = rendered.replace("{" + key + "}", str(value))
    return rendered.replace("\x00", "{").replace("\x01", "}")


def format_requirements(
    items: Sequence[RequirementItem],
    regime: ScoringRegime,
    previous: Optional[Mapping[UUID, AnalysisResult]] = None,
) -> str:
    """Numbered requirement list in submission order."""
    blocks = []
    for index, item in enumerate(items, start=1):
        lines = [
            f"{index}. Requirement: {item.item_name}",
            f"   ID: {item.id}",
            f"   Category: {item.category}",
        ]
        if item.description:
            lines.append(f"   Description: {item.description}")

        if regime == ScoringRegime.RISK_POINTS:
            lines.append(f"   Field type: {item.field_type or 'Yes/No'}")
            lines.append(f"   Scoring logic: {item.scoring_logic or 'Not scored'}")

        if previous and item.id in previous:
            prior = previous[item.id]
            lines.append(f"   Previous assessment: {prior.status.value} - {prior.reasoning}")

        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_context(chunks: Sequence[OrderedChunk]) -> str:
    """Label each chunk with its excerpt number and source page."""
    parts = []
    for index, chunk in enumerate(chunks, start=1):
        label = f"[Excerpt {index}"
        if chunk.page_number is not None:
            label += f" - Page {chunk.page_number}"
        parts.append(f"{label}]\n{chunk.content}")
    return "\n\n".join(parts)


PROMPTS_BY_REGIME: Dict[ScoringRegime, str] = {
    ScoringRegime.PASS_RATE: COMPLIANCE_ANALYSIS_PROMPT,
    ScoringRegime.RISK_POINTS: LEGAL_ANALYSIS_PROMPT,
}


def build_analysis_prompt(
    items: Sequence[RequirementItem],
    regime: ScoringRegime,
    context: str,
    previous: Optional[Mapping[UUID, AnalysisResult]] = None,
) -> str:
    """Full user prompt for one unit of analysis."""
    prompt = render_prompt(
        PROMPTS_BY_REGIME[regime],
        requirement_count=len(items),
        requirements_list=format_requirements(items, regime, previous),
        document_content=context,
    )
    if previous:
        prompt = f"{REGENERATE_PREAMBLE}\n\n{prompt}"
    return prompt
