"""Prompt templates for debate agents and the judge."""

from .types import AgentClarifications, AgentRole, ContributionType, Round

_SHARED_GUIDELINES = """
## General Guidelines

- Avoid code snippets unless essential to illustrate a complex technical point
- Prioritize conceptual clarity over implementation details
- Be concise but complete
- Clarifications provided during the debate are authoritative; incorporate them
- Distinguish major requirements ("must", "shall", "required") from minor ones
  ("should", "ideally")"""

ROLE_PROMPTS: dict[AgentRole, str] = {
    AgentRole.ARCHITECT: """You are an expert software architect
specializing in distributed systems.

Your focus: scalability, component boundaries, interfaces, architectural patterns,
data flow, state management, and operational concerns.

When proposing:
- Begin with the high-level architecture and rationale
- Identify main components and their responsibilities
- Describe communication and data flow

When critiquing:
- Identify architectural bottlenecks or weaknesses
- Assess clarity of component boundaries and data ownership
- Suggest concrete, principle-based improvements""",
    AgentRole.SECURITY: """You are a security engineer reviewing system designs.

Your focus: threat modeling, authentication and authorization, data protection,
input validation, secrets handling, and compliance exposure.

When proposing:
- Identify assets, trust boundaries, and likely attackers
- Describe the controls that protect each boundary

When critiquing:
- Point out concrete attack paths and missing controls
- Rate each issue by severity and suggest a mitigation""",
    AgentRole.PERFORMANCE: """You are a performance engineer.

Your focus: latency, throughput, resource usage, caching, contention,
and capacity planning.

When proposing:
- State the expected load and the performance targets
- Explain how the design meets them and where it saturates

When critiquing:
- Identify hot paths, unbounded work, and contention points
- Quantify impact where possible and suggest optimizations""",
    AgentRole.TESTING: """You are a test and quality engineer.

Your focus: testability, verification strategy, failure modes,
edge cases, and observability needed to diagnose problems.

When proposing:
- Describe how each component is verified in isolation and together
- List the riskiest behaviors and how they are exercised

When critiquing:
- Identify untestable designs and unhandled edge cases
- Suggest specific tests or design changes that expose defects early""",
    AgentRole.GENERALIST: """You are a pragmatic senior engineer with broad experience.

Balance correctness, simplicity, cost, and delivery risk. Prefer the simplest
design that satisfies the stated requirements, and call out over-engineering.""",
}

JUDGE_SYSTEM_PROMPT = """You are an expert technical judge
synthesizing the outcome of a design debate.

Weigh the strongest ideas from every participant, resolve disagreements with
explicit reasoning, and produce one coherent final solution. Do not invent
requirements that were never stated. You may use the available tools to look
up what participants said before answering."""


def system_prompt_for(role: AgentRole, override: str | None = None) -> str:
    """System prompt for an agent role, with the shared guidelines appended."""
    base = override or ROLE_PROMPTS.get(role, ROLE_PROMPTS[AgentRole.GENERALIST])
    return base + "\n" + _SHARED_GUIDELINES


def format_clarifications(groups: tuple[AgentClarifications, ...] | None) -> str:
    """Render answered clarifications grouped by the agent that asked them."""
    if not groups:
        return ""
    text = "## Clarifications\n\n"
    for group in groups:
        if not group.items:
            continue
        text += f"### {group.agent_name} ({group.role})\n"
        for item in group.items:
            text += f"Question ({item.id}): {item.question}\n"
            text += f"Answer: {item.answer or 'NA'}\n\n"
    return text


def format_history(rounds: tuple[Round, ...]) -> str:
    """One line per contribution: role, type, and the first line of content."""
    blocks = []
    for record in rounds:
        lines = []
        for c in record.contributions:
            first_line = c.content.split("\n")[0] if c.content else ""
            preview = first_line[:100] + "..." if len(first_line) > 100 else first_line
            lines.append(f"  [{c.agent_role}] {c.type.value}: {preview}")
        blocks.append(f"Round {record.round_number}:\n" + "\n".join(lines))
    return "\n\n".join(blocks)


def _with_context(
    prompt: str,
    clarifications: tuple[AgentClarifications, ...] | None,
    history: tuple[Round, ...],
    include_full_history: bool,
    summary: str | None = None,
) -> str:
    parts = []
    clar = format_clarifications(clarifications)
    if clar:
        parts.append(clar)
    if summary:
        parts.append(f"=== Previous Debate Context ===\n\n[SUMMARY]\n{summary}\n")
    elif history and include_full_history:
        parts.append(f"=== Previous Debate Rounds ===\n\n{format_history(history)}\n")
    parts.append(prompt)
    return "\n".join(parts)


def proposal_prompt(
    problem: str,
    clarifications: tuple[AgentClarifications, ...] | None = None,
    history: tuple[Round, ...] = (),
    include_full_history: bool = True,
    summary: str | None = None,
) -> str:
    prompt = f"""Problem to solve:
{problem}

Propose a comprehensive solution from your perspective. Cover the approach,
key components, main challenges and trade-offs, and why the design fits.
End with a "Requirements Coverage" section mapping each major requirement
to the part of your proposal that fulfills it."""
    return _with_context(prompt, clarifications, history, include_full_history, summary)


def critique_prompt(
    problem: str,
    author_name: str,
    proposal: str,
    clarifications: tuple[AgentClarifications, ...] | None = None,
    history: tuple[Round, ...] = (),
    include_full_history: bool = True,
    summary: str | None = None,
) -> str:
    prompt = f"""Problem:
{problem}

Review this proposal by {author_name} from your perspective.

Proposal:
{proposal}

Structure your critique as:
### Strengths
### Weaknesses and Risks
### Improvement Suggestions
### Critical Issues"""
    return _with_context(prompt, clarifications, history, include_full_history, summary)


def refinement_prompt(
    problem: str,
    original: str,
    critiques: list[tuple[str, str]],
    clarifications: tuple[AgentClarifications, ...] | None = None,
    history: tuple[Round, ...] = (),
    include_full_history: bool = True,
    summary: str | None = None,
) -> str:
    """Refinement prompt; *critiques* holds ``(critic_name, critique)`` pairs."""
    if critiques:
        critiques_text = "\n\n".join(f"From {name}:\n{text}" for name, text in critiques)
    else:
        critiques_text = "(no critiques were received)"
    prompt = f"""Problem:
{problem}

Original proposal:
{original}

Critiques:
{critiques_text}

Refine your proposal by addressing valid concerns, incorporating good
suggestions, and strengthening the solution. Return the complete refined
proposal, not a list of changes."""
    return _with_context(prompt, clarifications, history, include_full_history, summary)


def clarification_prompt(problem: str, max_questions: int) -> str:
    return f"""Problem:
{problem}

Before proposing a solution, list the clarifying questions whose answers would
most improve the solution. Ask at most {max_questions}.

Respond with ONLY a JSON object using this exact schema (no prose, no markdown fences):
{{"questions": [{{"id": "q1", "text": "..."}}]}}

If no questions are needed, return {{"questions": []}}."""


def synthesis_prompt(
    problem: str,
    rounds: tuple[Round, ...],
    clarifications: tuple[AgentClarifications, ...] | None = None,
) -> str:
    final_refinements = []
    if rounds:
        for c in rounds[-1].contributions:
            if c.type == ContributionType.REFINEMENT and not c.failed:
                final_refinements.append(f"### [{c.agent_role}] {c.agent_id}\n{c.content}")
    refined = "\n\n".join(final_refinements) or "(none)"
    prompt = f"""Problem:
{problem}

Debate summary:
{format_history(rounds)}

Final refined proposals:
{refined}

Synthesize the single best solution. Explain the key decisions, the trade-offs
accepted, and any open risks. Use context_search to recall earlier arguments
if you need their detail."""
    return _with_context(prompt, clarifications, (), False)


SUMMARY_FOCUS: dict[AgentRole, str] = {
    AgentRole.ARCHITECT: (
        "key architectural decisions, component designs, scalability concerns, "
        "and design patterns"
    ),
    AgentRole.SECURITY: "threats identified, controls agreed on, and unresolved security risks",
    AgentRole.PERFORMANCE: "performance targets, bottlenecks, caching, and capacity decisions",
    AgentRole.TESTING: "the verification strategy, risky behaviors, and untested edge cases",
    AgentRole.GENERALIST: "the main decisions, trade-offs, and open questions",
}

_SUMMARY_GUIDELINES = """
## Summary Guidelines

- Preserve key decisions, their rationale, and recurring insights
- Focus on your specialized perspective and the major component interactions
- Highlight patterns or trade-offs that appeared more than once
- Keep the summary concise but keep every critical reasoning thread"""


def summary_prompt(role: AgentRole, history: str, max_length: int) -> str:
    """Ask an agent to condense its own debate history."""
    focus = SUMMARY_FOCUS.get(role, SUMMARY_FOCUS[AgentRole.GENERALIST])
    return f"""You are summarizing the debate history from your perspective.
Focus on {focus}.

Debate history to summarize:
{history}

Create a concise summary (maximum {max_length} characters) that preserves the most
important insights, decisions, and open questions. Keep what will be useful in
later rounds of the debate.
{_SUMMARY_GUIDELINES}"""
