"""Prompt templates for agentic answering."""

SYSTEM_ROLE = "You are an expert QA technical assistant."

NO_CONTEXT = "(no relevant context found)"


def plan_queries_prompt(question: str, max_queries: int = 3) -> str:
    return f"""{SYSTEM_ROLE}
User Query: "{question}"

Your goal is to answer this query using documentation.
Generate 1 to {max_queries} distinct search queries to find relevant info.
Return strictly a JSON array of strings. Example: ["query1", "query2"]
"""


def synthesize_answer_prompt(question: str, context: str) -> str:
    return f"""{SYSTEM_ROLE}
User Query: "{question}"

Context:
{context or NO_CONTEXT}

Answer the user query based ONLY on the provided context.
If the context is insufficient, state that you don't have enough information.
Cite the specific [Type] Title if possible.
"""
