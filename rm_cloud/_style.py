"""Terminal styling for rm-cloud output. Plain text when stdout is not a TTY."""

import sys

_USE_COLOR = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _sgr(code: str) -> str:
    return f"\033[{code}m" if _USE_COLOR else ""


BOLD = _sgr("1")
DIM = _sgr("2")
RED = _sgr("31")
GREEN = _sgr("32")
BLUE = _sgr("34")
RESET = _sgr("0")


def header(version: str) -> str:
    return f"{BOLD}rm-cloud{RESET} {DIM}v{version}{RESET} · reMarkable Cloud client"


def step(n: int, text: str) -> str:
    """'  Step 2 → text', with the arrow dimmed."""
    return f"  {BOLD}Step {n}{RESET} {DIM}→{RESET} {text}"


def _marked(mark: str, color: str, text: str) -> str:
    return f"  {color}{mark}{RESET} {text}"


def success(text: str) -> str:
    return _marked("✓", GREEN, text)


def error(text: str) -> str:
    return _marked("✗", RED, text)


def listing(name: str, doc_id: str, is_folder: bool, indent: str = "") -> str:
    """One `ls` line. Folders get a trailing slash and are shown bold blue."""
    if is_folder:
        name = f"{BOLD}{BLUE}{name}/{RESET}"
    return f"{indent}{name} {DIM}{doc_id}{RESET}"
