import re

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def strip_ansi(output: str) -> str:
    """Remove ANSI escape codes, keeping layout intact."""
    return ANSI_ESCAPE.sub("", output)


def clean_cli_output(output: str) -> str:
    """
    Remove ANSI escape codes, box drawing characters, whitespace, and newlines
    from CLI output to make assertions robust against terminal wrapping.
    """
    output = strip_ansi(output)

    # \s - all whitespace (space, tab, newline, etc.)
    # │, ║, ╔, ╗, ╚, ╝, ═, ╦, ╩, ╠, ╣, ╬ - box characters
    return re.sub(r"[\s│║╔╗╚╝═╦╩╠╣╬]", "", output)
