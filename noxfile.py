"""Nox Configuration for tctl."""
from pathlib import Path
import shutil

import nox
from nox.sessions import Session

src_locations = ["src"]
test_locations = ["tests"]


@nox.session(venv_backend="venv")
def tests(session: Session) -> None:
    """Run the test suite."""
    session.install("uv")
    # Install all dev dependencies, including pytest and the package itself
    session.run("uv", "sync", "--active", "--group", "dev")

    args = session.posargs or test_locations

    session.run(
        "coverage",
        "run",
        "-m",
        "pytest",
        "--junitxml=.test_report.xml",
        *args,
    )


@nox.session(venv_backend="venv")
def lint(session: Session) -> None:
    """Lint code using various plugins.

    flake8 - a Python library that wraps PyFlakes, pycodestyle and McCabe script.
    flake8-import-order - checks the ordering of your imports.
    flake8-docstrings - extension for flake8 which uses pydocstyle to check docstrings.
    flake8-annotations -is a plugin for Flake8 that detects the absence of PEP 3107-style
    function annotations and PEP 484-style type comments.
    """
    session.install("uv")
    args = session.posargs or src_locations
    session.run("uv", "sync", "--active", "--group", "dev")
    session.run("flake8", *args)


@nox.session(venv_backend="venv")
def format(session):
    session.install("uv")
    args = session.posargs or src_locations + test_locations
    session.run("uv", "sync", "--active", "--group", "dev")
    session.run(
        "autoflake",
        "--in-place",
        "--remove-all-unused-imports",
        "--recursive",
        *args
    )
    session.run("isort", *args)
    session.run("black", *args)


@nox.session(venv_backend="venv")
def typecheck(session: Session) -> None:
    """Type check code."""
    session.install("uv")
    args = session.posargs or src_locations
    session.run("uv", "sync", "--active", "--group", "dev")
    session.run("mypy", "--explicit-package-bases", *args)


@nox.session(venv_backend="venv")
def build(session: Session) -> None:
    session.install("uv")
    session.run("uv", "sync", "--active", "--group", "dev")
    session.run("python", "-m", "build", "--outdir", "dist", ".")


@nox.session(venv_backend="venv")
def clean(session: Session) -> None:
    """Clean up all build artifacts and caches."""
    dirs_to_remove = ["out", "dist", "build", ".eggs", ".pytest_cache", ".mypy_cache"]
    dirs_to_remove.extend(str(p) for p in Path(".").rglob("*.egg-info") if p.is_dir())

    for path_str in sorted(set(dirs_to_remove)):
        path_obj = Path(path_str)
        if path_obj.is_dir():
            session.log(f"Removing directory: {path_obj}")
            shutil.rmtree(path_obj, ignore_errors=True)

    for file_str in [".test_report.xml", ".coverage"]:
        file_obj = Path(file_str)
        if file_obj.is_file():
            session.log(f"Removing file: {file_obj}")
            file_obj.unlink()

    session.log("Clean-up finished.")
