"""Shared fixtures for BRICK channel tests."""

import logging
import tempfile
from pathlib import Path

import pytest
from git import Repo


def commit_file(repo: Repo, name: str, content: str, message: str) -> str:
    """Write a file into the repo, commit it and return the commit hash."""
    file_path = Path(repo.working_tree_dir) / name
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content)
    repo.index.add([name])
    return repo.index.commit(message).hexsha


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir).resolve()


@pytest.fixture
def empty_repo(temp_dir):
    """Create a git repository with no commits yet."""
    repo = Repo.init(temp_dir)
    with repo.config_writer() as config:
        config.set_value("user", "name", "Test User")
        config.set_value("user", "email", "test@example.com")
    return repo


@pytest.fixture
def git_repo(empty_repo):
    """Create a git repository with one initial commit."""
    commit_file(empty_repo, "README.md", "# Project\n", "Initial commit")
    return empty_repo


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers installed by CLI invocations between tests."""
    yield
    logger = logging.getLogger("brick_channels")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def make_commit():
    """Expose ``commit_file`` to tests."""
    return commit_file
