"""Prompt builders for every pipeline phase."""

import json

from src.domain.entities.artifact import FailureAnalysis, GeneratedArtifact, TargetLanguage, TestOutcome
from src.domain.entities.research import ResearchResult
from src.domain.entities.tools import AgentPerspective, ToolRecommendation

JSON_ONLY = "Respond with JSON only. No prose before or after it."

TOOL_JSON_SHAPE = """{
  "tools": [
    {
      "name": "snake_case_name",
      "description": "what the tool does",
      "input_schema": {"type": "object", "properties": {}, "required": []},
      "output_format": "json | text",
      "priority": "high | medium | low",
      "estimated_complexity": "simple | moderate | complex"
    }
  ],
  "confidence": 0.0,
  "reasoning": "why these tools"
}"""


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def research_digest(research: ResearchResult | None, limit: int = 4000) -> str:
    """Compact text form of a research result for downstream prompts."""
    if research is None:
        return "No research available."
    plan = research.synthesized_plan
    parts = [
        f"Summary: {plan.summary}",
        "Key insights:\n" + "\n".join(f"- {i}" for i in plan.key_insights),
        f"Recommended approach: {plan.recommended_approach}",
    ]
    if plan.potential_challenges:
        parts.append("Challenges:\n" + "\n".join(f"- {c}" for c in plan.potential_challenges))
    if research.documentation:
        doc = research.documentation
        parts.append(
            f"Documentation {doc.url}: auth={doc.authentication.type}, base_url={doc.base_url or 'unknown'}, "
            f"endpoints={', '.join(doc.endpoints[:20]) or 'none found'}"
        )
    if research.source_analysis:
        src = research.source_analysis
        parts.append(
            f"Repository {src.repository.full_name or src.repository.name}: {src.repository.description}; "
            f"endpoints={', '.join(src.api_endpoints[:20]) or 'none found'}; "
            f"dependencies={', '.join(src.dependencies[:15])}"
        )
    if research.web_findings and research.web_findings.best_practices:
        parts.append("Findings:\n" + "\n".join(f"- {b}" for b in research.web_findings.best_practices[:8]))
    return _clip("\n\n".join(parts), limit)


def build_intent_prompt(user_input: str) -> str:
    return f"""Classify the user's message for an MCP server generator.

Message: {user_input}

Return {{"intent": "generate" | "research" | "help" | "unclear", "confidence": 0.0-1.0, "reasoning": "..."}}
Use "unclear" only when there is nothing to build from. {JSON_ONLY}"""


def build_classification_prompt(user_input: str) -> str:
    return f"""Is this input the name of a specific service/API, or a free-text description of a need?

Input: {user_input}

Return {{"type": "service_name" | "natural_language", "service_name": "...or null",
"confidence": 0.0-1.0, "keywords": ["..."]}} {JSON_ONLY}"""


def build_service_identification_prompt(user_input: str) -> str:
    return f"""Which existing services or public APIs could fulfil this request?

Request: {user_input}

Return a JSON array of service names, most relevant first, at most 3. Return [] if none fit.
{JSON_ONLY}"""


def build_synthesis_prompt(user_input: str, evidence: str, clarifications: str) -> str:
    answers = f"\nUser clarifications:\n{clarifications}\n" if clarifications else ""
    return f"""Synthesize the research below into one plan for an MCP server.

Request: {user_input}
{answers}
Evidence:
{evidence}

Return {{"summary": "...", "key_insights": ["3 to 5 items"], "recommended_approach": "...",
"potential_challenges": ["only real blockers"], "confidence": 0.0-1.0, "reasoning": "..."}}
{JSON_ONLY}"""


SPECIALIST_FOCUS = {
    "architect": "overall tool design: cohesive, non-overlapping tools that cover the main use cases",
    "security": "input validation, authentication, secrets handling and safe defaults in tool schemas",
    "performance": "batching, pagination, caching and rate-limit friendly tool shapes",
    "mcp_specialist": "strict MCP protocol compliance: tool naming, JSON Schema inputs, result formats",
}


def build_specialist_prompt(agent_name: str, user_input: str, research: ResearchResult | None) -> str:
    return f"""You are the {agent_name} specialist. Focus: {SPECIALIST_FOCUS[agent_name]}.

Request: {user_input}

Research:
{research_digest(research)}

Propose the tools this MCP server should expose. Return:
{TOOL_JSON_SHAPE}
{JSON_ONLY}"""


def build_mediation_prompt(user_input: str, perspectives: list[AgentPerspective]) -> str:
    proposals = "\n".join(
        f"- {p.agent_name} (weight {p.weight}, confidence {p.confidence:.2f}): "
        + (", ".join(r.name for r in p.recommendations) or "no proposals")
        for p in perspectives
    )
    return f"""Specialists disagree on the tools for this MCP server.

Request: {user_input}

Proposals:
{proposals}

Synthesize a final list of 5-10 tools that resolves the disagreement. Return:
{TOOL_JSON_SHAPE}
{JSON_ONLY}"""


def build_gap_prompt(user_input: str, research: ResearchResult | None, history: str) -> str:
    asked = f"\nAlready asked and answered:\n{history}\n" if history else ""
    return f"""Find information that is genuinely missing before an MCP server can be generated.

Request: {user_input}
{asked}
Research:
{research_digest(research)}

Only report a gap when generation is impossible without it. Never ask about things research
already found (authentication method, endpoints, base URL), the programming language,
or optional features. Return {{"gaps": [{{"issue": "...", "priority": "HIGH | MEDIUM | LOW",
"suggested_question": "...", "context": "..."}}]}}; an empty list when nothing is missing.
{JSON_ONLY}"""


def build_generation_prompt(
    server_name: str,
    tools: list[ToolRecommendation],
    language: TargetLanguage,
    research: ResearchResult | None,
    env_var_names: list[str],
) -> str:
    tool_specs = json.dumps([t.model_dump(mode="json") for t in tools], indent=2)
    if language == TargetLanguage.PYTHON:
        stack = "Python 3.11 using the official `mcp` package (FastMCP), stdio transport"
        ending = 'End the file with `if __name__ == "__main__":` invoking the server.'
    else:
        stack = "TypeScript using @modelcontextprotocol/sdk, stdio transport"
        ending = "Define `async function main()` and end the file with `main().catch(console.error);`."
    env_line = (
        f"Read credentials only from environment variables: {', '.join(env_var_names)}."
        if env_var_names
        else "Do not hard-code credentials."
    )
    return f"""Write the complete main source file of an MCP server named "{server_name}".

Stack: {stack}.
{env_line}
{ending}

Tools:
{tool_specs}

Context:
{research_digest(research, limit=2500)}

Output only the source code of the file."""


def build_failure_analysis_prompt(artifact: GeneratedArtifact, outcome: TestOutcome) -> str:
    failures = "\n".join(
        f"- {r.tool_name}: {r.error or 'failed'} (mcp_compliant={r.mcp_compliant})"
        for r in outcome.failed_results
    )
    build = "" if outcome.build_success else f"\nBuild failed:\n{_clip(outcome.build_error or '', 2000)}\n"
    return f"""An MCP server failed its tests. Find the root causes.
{build}
Failing tools:
{failures or "- none reported"}

Source ({artifact.main_file_name}):
{_clip(artifact.main_file, 12000)}

Return {{"failure_count": 0, "categories": {{"syntax": 0, "runtime": 0, "protocol": 0, "logic": 0,
"timeout": 0}}, "root_causes": ["..."], "fixes": [{{"tool_name": "...", "issue": "...", "solution": "...",
"priority": "HIGH | MEDIUM | LOW", "code_snippet": "optional"}}], "recommendation": "..."}}
{JSON_ONLY}"""


def build_repair_prompt(artifact: GeneratedArtifact, analysis: FailureAnalysis) -> str:
    fixes = "\n".join(
        f"{n}. [{f.priority.value}] {f.tool_name}: {f.issue} -> {f.solution}"
        + (f"\n   e.g. {f.code_snippet}" if f.code_snippet else "")
        for n, f in enumerate(analysis.sorted_fixes(), start=1)
    )
    return f"""Apply these fixes to the MCP server source and return the COMPLETE corrected file.

Root causes:
{chr(10).join(f"- {c}" for c in analysis.root_causes) or "- unknown"}

Fixes (highest priority first):
{fixes or "- review each failing tool"}

Current source ({artifact.main_file_name}):
{artifact.main_file}

Output only the full corrected source code."""
