"""Prompt templates for the analysis provider.

Four templates:
1. file_summary_prompt - 2-3 sentence summary used for semantic indexing
2. symbols_explanation_prompt - batched per-symbol explanation (JSON array)
3. symbol_explanation_prompt - single symbol with surrounding context (JSON object)
4. cohesive_explanation_prompt - one narrative answer across many files
"""

from typing import Dict, List, Optional

from ..ast_parser.models import Symbol


def build_file_summary_prompt(file_path: str, content: str, language: str = "") -> str:
    """Build the indexing summary prompt. ``content`` is already truncated."""
    return f"""Summarize what the following source file does in 2-3 sentences.
Name the main responsibilities, key classes or functions, and what other parts of a codebase would use it for.
Respond with plain text only.

## FILE
{file_path}{f" ({language})" if language else ""}

## SOURCE
```{language}
{content}
```"""


def build_symbols_explanation_prompt(symbols: List[Symbol]) -> str:
    """Build the batched explanation prompt.

    The model must answer with a JSON array holding exactly one object per
    symbol, in the same order.
    """
    blocks = []
    for index, symbol in enumerate(symbols, start=1):
        blocks.append(
            f"{index}. {symbol.kind} \"{symbol.name}\" "
            f"(lines {symbol.line_start}-{symbol.line_end}):\n"
            f"```{symbol.language}\n{symbol.code}\n```"
        )
    symbols_section = "\n\n".join(blocks)

    return f"""You are an expert code reviewer. Explain each of the following {len(symbols)} code symbols.

## SYMBOLS
{symbols_section}

## OUTPUT FORMAT
Respond with ONLY a JSON array of exactly {len(symbols)} objects, in the same order as the symbols above:
[
  {{
    "summary": "One or two sentence description",
    "detailed": "What it does, its parameters, return value and main logic",
    "complexity": <cyclomatic complexity estimate as an integer from 1 to 10>
  }}
]"""


def build_cohesive_explanation_prompt(
    question: str,
    files: List[Dict[str, str]],
    target_file_path: Optional[str] = None,
    target_symbol_name: Optional[str] = None,
) -> str:
    """Build the synthesis prompt.

    Args:
        question: The user's natural-language question
        files: [{"filePath", "language", "content"}], content already truncated
        target_file_path: File the question is anchored to, if any
        target_symbol_name: Symbol the question is anchored to, if any
    """
    file_sections = []
    for f in files:
        file_sections.append(
            f"### {f['filePath']}\n```{f.get('language', '')}\n{f['content']}\n```"
        )

    focus = ""
    if target_symbol_name and target_file_path:
        focus = f"\nFocus on `{target_symbol_name}` in `{target_file_path}`; the other files are supporting context.\n"
    elif target_file_path:
        focus = f"\nFocus on `{target_file_path}`; the other files are supporting context.\n"

    return f"""You are a senior engineer explaining a codebase to a colleague.
Answer the question below using ONLY the provided files. Cite file paths when you refer to code.
{focus}
## QUESTION
{question}

## FILES
{chr(10).join(file_sections)}

## OUTPUT FORMAT
Respond in markdown with these sections:
1. **Overview** - a direct answer to the question
2. **Main files** - which files matter and what each contributes
3. **How it works** - the flow step by step
4. **Security considerations** - anything risky you notice (or "None noted")
5. **Dependencies** - notable libraries or internal modules involved"""
