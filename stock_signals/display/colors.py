"""ANSI color codes for terminal output."""


class Colors:
    """ANSI escape codes for terminal coloring."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    # Foreground
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"


def paint(text: str, color: str, enabled: bool = True) -> str:
    """Wrap text in a color code, or return it untouched when disabled."""
    if not enabled or not color:
        return text
    return f"{color}{text}{Colors.RESET}"


def change_color(percent: float) -> str:
    """Green for gains, red for losses, yellow for flat."""
    if percent > 0:
        return Colors.GREEN
    elif percent < 0:
        return Colors.RED
    else:
        return Colors.YELLOW
