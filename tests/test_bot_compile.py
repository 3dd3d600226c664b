import py_compile
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_front_end_modules_compile() -> None:
    """The Discord front-end modules should at least be syntactically valid.

    They need the real ``discord`` package to import, so compiling them here
    catches syntax regressions without it being installed.
    """

    for rel in (
        "roster_bot/bot.py",
        "roster_bot/main.py",
        "roster_bot/commands/register.py",
        "roster_bot/ui/views.py",
        "roster_bot/ui/modals.py",
    ):
        py_compile.compile(str(ROOT / rel), doraise=True)
