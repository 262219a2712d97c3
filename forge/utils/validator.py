"""Input validation for edit instructions and section keys."""


def validate_instruction(message: str) -> str:
    """Validate that the edit instruction is a non-empty string.

    Returns the stripped input on success.
    Raises ValueError if input is empty or whitespace-only.
    """
    if not isinstance(message, str) or not message.strip():
        raise ValueError("Edit instruction must be a non-empty string.")
    return message.strip()


def validate_section(section: str, sections: tuple[str, ...]) -> str:
    """Validate that section is one of the stage's predefined section keys."""
    if section not in sections:
        raise ValueError(f"Invalid section '{section}'. Must be one of: {list(sections)}")
    return section
