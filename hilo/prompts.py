"""
Prompt templates for mini-summaries, volume summaries and the
volume completion check.

Each builder returns a (system, user) pair. System prompts can be
overridden per store via the [settings.prompts] config section; an empty
override means the default is used.
"""

from .config import PromptOverrides

# Completion-check answers. Arbitrary numbers are used instead of yes/no
# so that a chatty reply ("yes, but...") cannot be mistaken for an answer.
VOLUME_COMPLETE_TOKEN = "114514"
VOLUME_INCOMPLETE_TOKEN = "1919810"

# Label each mini-summary carries in the volume prompt, and the range
# marker the model echoes back: "summary<A>-summary<B>"
SUMMARY_LABEL = "summary"


DEFAULT_MINI_SUMMARY_SYSTEM = """You are a story summarization assistant. Summarize one message from a role-play chat log as a short mini-summary.

Requirements:
1. Keep key plot points, character actions, emotional changes and important dialogue
2. Narrate in the third person
3. Be concise: at most 300 words
4. Do not add commentary, analysis or opinions of your own
5. Output only the summary, with no title, numbering or other formatting"""

DEFAULT_VOLUME_SUMMARY_SYSTEM = f"""You are a story summarization assistant. Merge a series of mini-summaries into one complete volume summary.

Requirements:
1. Integrate all mini-summaries into a coherent narrative
2. Keep the main plot lines, character development, key events and important dialogue
3. Organize the content chronologically
4. Narrate in the third person
5. Be thorough but tight: at most 2000 words
6. Do not add commentary, analysis or opinions of your own
7. If the material does not yet make up a complete volume, you may summarize only the first part, as long as it is a continuous run of summaries
8. On the very last line, on its own, state the range you summarized in the form {SUMMARY_LABEL}x-{SUMMARY_LABEL}y (for example: {SUMMARY_LABEL}100-{SUMMARY_LABEL}150)
9. Apart from the summary and the trailing range line, add no titles, numbering or other formatting"""

DEFAULT_VOLUME_COMPLETION_CHECK_SYSTEM = f"""You are a story analysis assistant. Based on the summaries below, decide whether the current volume of the story has reached a natural break (a chapter ending, an event wrapping up, a major change of scene, and so on).

Answer only "{VOLUME_COMPLETE_TOKEN}" or "{VOLUME_INCOMPLETE_TOKEN}" with no explanation.
- "{VOLUME_COMPLETE_TOKEN}" means the volume has reached a good break and can be archived
- "{VOLUME_INCOMPLETE_TOKEN}" means the story is still in progress and should not be split here"""


def mini_summary_prompt(
    message: str,
    context: str,
    overrides: PromptOverrides,
    *,
    marker: str = "",
) -> tuple[str, str]:
    """
    Build the prompt for summarizing one turn.

    Args:
        message: Cleaned turn text
        context: Preceding mini-summaries, newline-joined (may be empty)
        overrides: User prompt overrides
        marker: Optional no-merge marker placed before the user prompt
    """
    user = ""
    if marker:
        user += f"{marker}\n"
    if context:
        user += f"Earlier summaries, for context:\n{context}\n\n---\n\n"
    user += f"Summarize the following message:\n\n{message}"
    return (overrides.mini_summary_system or DEFAULT_MINI_SUMMARY_SYSTEM, user)


def volume_summary_prompt(
    summaries: list[tuple[int, str]],
    previous_volumes: list[str],
    overrides: PromptOverrides,
    *,
    marker: str = "",
) -> tuple[str, str]:
    """
    Build the prompt for folding mini-summaries into a volume.

    Args:
        summaries: (turn_id, content) pairs in turn order
        previous_volumes: Earlier volume contents, oldest first
        overrides: User prompt overrides
        marker: Optional no-merge marker placed before the user prompt
    """
    user = ""
    if marker:
        user += f"{marker}\n"
    if previous_volumes:
        user += "Summaries of the earlier volumes, for background:\n\n"
        for i, content in enumerate(previous_volumes, start=1):
            user += f"--- Volume {i} ---\n{content}\n\n"
        user += "===\n\n"
    user += "Merge the following mini-summaries into one coherent volume summary:\n\n"
    for turn_id, content in summaries:
        user += f"[{SUMMARY_LABEL}{turn_id}] {content}\n\n"
    return (overrides.volume_summary_system or DEFAULT_VOLUME_SUMMARY_SYSTEM, user)


def volume_completion_check_prompt(
    summaries: list[str],
    overrides: PromptOverrides,
    *,
    marker: str = "",
) -> tuple[str, str]:
    """Build the prompt asking whether the current volume is complete."""
    user = ""
    if marker:
        user += f"{marker}\n"
    user += "Here is the recent sequence of mini-summaries:\n\n"
    for content in summaries:
        user += f"{content}\n\n"
    user += "Has the story above reached a natural break?"
    return (
        overrides.volume_completion_check_system or DEFAULT_VOLUME_COMPLETION_CHECK_SYSTEM,
        user,
    )
