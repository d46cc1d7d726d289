"""Input screening for chat questions.

Questions are passed to the language model verbatim as user content, so the
screen rejects text that tries to impersonate conversation roles, override
the system prompt, or forge tool-call blocks. Anything that passes is
trimmed and stripped of control characters.
"""

import re

import structlog

logger = structlog.get_logger(__name__)

MAX_QUESTION_LENGTH = 1000

_ROLES = r"(system|user|assistant)"

_INJECTION_PATTERNS = [
    # Role prefixes only at the start of a line; "status: active for user: x" is fine
    re.compile(rf"^\s*({_ROLES}|human|role)\s*:", re.IGNORECASE | re.MULTILINE),
    re.compile(rf"<\s*/?\s*{_ROLES}\s*>", re.IGNORECASE),
    re.compile(rf"```\s*{_ROLES}", re.IGNORECASE),
    # 1-3 words between the verb and its object
    re.compile(
        r"\b(ignore|disregard|forget)\s+\w+(\s+\w+){0,2}\s+(instructions?|prompts?)\b",
        re.IGNORECASE,
    ),
    re.compile(r'"\s*type\s*"\s*:\s*"\s*tool_(use|result)\s*"', re.IGNORECASE),
    re.compile(r'"\s*tool_use_id\s*"\s*:', re.IGNORECASE),
]


def sanitize_user_input(question: str, max_length: int = MAX_QUESTION_LENGTH) -> str:
    """Validate and clean a user question before it reaches the model.

    Args:
        question: Raw user input
        max_length: Maximum allowed length in characters

    Returns:
        The trimmed question without control characters (newlines and tabs
        are kept)

    Raises:
        ValueError: If the question is empty, too long, or matches an
            injection pattern
    """
    if not question or not question.strip():
        logger.warning("empty_question_rejected")
        raise ValueError("Question cannot be empty.")

    if len(question) > max_length:
        logger.warning("question_too_long", length=len(question), max_length=max_length)
        raise ValueError(
            f"Question too long ({len(question)} characters). "
            f"Maximum allowed: {max_length} characters."
        )

    for pattern in _INJECTION_PATTERNS:
        if pattern.search(question):
            logger.warning(
                "prompt_injection_detected",
                question=question[:100],
                pattern=pattern.pattern,
            )
            raise ValueError(
                "Question contains suspicious patterns that may indicate a prompt "
                "injection attempt. Please rephrase your question."
            )

    sanitized = "".join(
        char for char in question.strip() if char.isprintable() or char in "\n\t"
    )
    logger.debug(
        "question_sanitized",
        original_length=len(question),
        sanitized_length=len(sanitized),
    )
    return sanitized
