"""noxfile.py - Nox sessions for the prompt store.

Updates:
  v0.1.0 - 2026-08-28 - Ruff, Pyright, and Pytest quality gate sessions in `.venv`.

Install the project with `pip install -e .[dev]` inside `.venv` before running these sessions.
Sessions:
- format: format code with ruff
- lint: run ruff lint checks
- typecheck: run pyright
- test: run pytest with coverage
- all: run every quality gate in order
"""

from __future__ import annotations

import sys
from pathlib import Path

import nox

CODE_LOCATIONS: tuple[str, ...] = ("config", "core", "models", "tests")
PYTEST_ARGS: tuple[str, ...] = (
    "-n",
    "auto",
    "--cov=core",
    "--cov=models",
    "--cov-report=term-missing",
    "--cov-fail-under=80",
    "tests",
)


def _venv_tool(session: nox.Session, command: str) -> str:
    """Return the `.venv` path for *command*, failing with guidance when missing."""
    bin_dir = Path(".venv") / ("Scripts" if sys.platform == "win32" else "bin")
    candidate = bin_dir / (f"{command}.exe" if sys.platform == "win32" else command)
    if not candidate.exists():
        session.error(
            f"Project virtual environment tool is missing: {candidate}. "
            "Create `.venv` and run `pip install -e .[dev]`."
        )
    return str(candidate)


@nox.session(venv_backend="none")
def format(session: nox.Session) -> None:
    """Usage: `nox -s format`"""
    session.run(_venv_tool(session, "ruff"), "format", *CODE_LOCATIONS, external=True)


@nox.session(venv_backend="none")
def lint(session: nox.Session) -> None:
    """Usage: `nox -s lint`"""
    session.run(_venv_tool(session, "ruff"), "check", *CODE_LOCATIONS, external=True)


@nox.session(venv_backend="none")
def typecheck(session: nox.Session) -> None:
    """Usage: `nox -s typecheck`"""
    session.run(_venv_tool(session, "pyright"), *CODE_LOCATIONS, external=True)


@nox.session(venv_backend="none")
def test(session: nox.Session) -> None:
    """Usage: `nox -s test`"""
    session.run(_venv_tool(session, "pytest"), *PYTEST_ARGS, *session.posargs, external=True)


@nox.session(venv_backend="none")
def all(session: nox.Session) -> None:
    """Run lint, format check, type check, and tests.

    Usage: `nox -s all`
    """
    ruff = _venv_tool(session, "ruff")
    session.run(ruff, "check", *CODE_LOCATIONS, external=True)
    session.run(ruff, "format", "--check", *CODE_LOCATIONS, external=True)
    session.run(_venv_tool(session, "pyright"), *CODE_LOCATIONS, external=True)
    session.run(_venv_tool(session, "pytest"), *PYTEST_ARGS, external=True)
