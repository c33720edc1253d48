import py_compile
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_entry_modules_compile() -> None:
    """The server entry point and HTTP modules should be syntactically valid.

    Importing them pulls in FastAPI and uvicorn; compiling them here catches
    a broken ``python -m groovetask.main`` without starting anything.
    """
    for name in ("main.py", "api/app.py", "api/register.py", "sync/state.py"):
        py_compile.compile(str(ROOT / "groovetask" / name), doraise=True)
