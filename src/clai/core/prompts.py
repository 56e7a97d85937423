"""Prompt templates for each request mode."""

from clai.core.context import CommandContext

HELP_LIMIT = 2000
MAN_EXCERPT_LIMIT = 3000
MAN_SUMMARY_LIMIT = 8000
TLDR_LIMIT = 2000


def build_explain_prompt(command: str, context: CommandContext) -> str:
    sections = [
        "You are a helpful CLI assistant. Explain the following command in plain language.\n"
        "Be concise but thorough. Include:\n"
        "- What the command does\n"
        "- What each argument/flag means\n"
        "- Common use cases\n"
        "- Potential gotchas or warnings\n"
        f"\nCommand: {command}\n"
    ]
    if context.help_output:
        sections.append(f"\n--help output:\n{context.help_output[:HELP_LIMIT]}\n")
    if context.man_page:
        sections.append(f"\nMan page excerpt:\n{context.man_page[:MAN_EXCERPT_LIMIT]}\n")
    sections.append("\nProvide a clear, beginner-friendly explanation.")
    return "".join(sections)


def build_suggest_prompt(task: str) -> str:
    return (
        "You are a helpful CLI assistant. The user wants to accomplish the following task:\n"
        f"\nTask: {task}\n"
        "\nSuggest one or more CLI commands that accomplish this task. For each suggestion:\n"
        "1. Show the exact command\n"
        "2. Explain what it does\n"
        "3. Note any prerequisites or warnings\n"
        "\nFocus on common Unix/macOS commands. Prefer simple, safe solutions."
    )


def build_examples_prompt(command: str, context: CommandContext) -> str:
    sections = [
        "You are a helpful CLI assistant. Provide practical, copy-pasteable examples\n"
        "for the following command:\n"
        f"\nCommand: {command}\n"
    ]
    if context.help_output:
        sections.append(f"\n--help output:\n{context.help_output[:HELP_LIMIT]}\n")
    if context.tldr_page:
        sections.append(f"\ntldr page:\n{context.tldr_page[:TLDR_LIMIT]}\n")
    sections.append(
        "\nProvide 5-7 examples covering:\n"
        "- Basic usage\n"
        "- Common options\n"
        "- Real-world scenarios\n"
        "\nFormat each example as:\n"
        "```\n"
        "command --flags arguments\n"
        "```\n"
        "Brief explanation of what this does."
    )
    return "".join(sections)


def build_man_summary_prompt(command: str, man_content: str | None) -> str:
    sections = [f"You are a helpful CLI assistant. Summarize the man page for: {command}\n\n"]
    if man_content:
        sections.append(f"Man page content:\n{man_content[:MAN_SUMMARY_LIMIT]}\n\n")
    sections.append(
        "Provide a concise summary including:\n"
        "1. What the command does (1-2 sentences)\n"
        "2. Most commonly used flags (top 5-10)\n"
        "3. Common usage patterns\n"
        "4. Important warnings or notes\n"
        "\nKeep it practical and beginner-friendly."
    )
    return "".join(sections)
