"""Relevance filtering and privacy classification for file changes."""

from collections import Counter
from pathlib import PurePath
from typing import Iterable, List, Sequence

from brick_channels.models.change import FileChange

# Directories and files to always ignore
DEFAULT_IGNORE_PATTERNS = (
    "node_modules",
    ".git",
    ".next",
    ".nuxt",
    "dist",
    "build",
    "out",
    ".cache",
    ".turbo",
    "__pycache__",
    ".pytest_cache",
    "target",  # Rust
    "vendor",  # Go/PHP
    ".idea",
    ".vscode",
    ".DS_Store",
    "Thumbs.db",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "Cargo.lock",
    "Gemfile.lock",
    "poetry.lock",
)

WATCHED_EXTENSIONS = frozenset(
    {
        ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
        ".py", ".rb", ".go", ".rs", ".java", ".kt", ".scala",
        ".c", ".cpp", ".h", ".hpp", ".cs",
        ".swift", ".m", ".mm",
        ".vue", ".svelte", ".astro",
        ".html", ".css", ".scss", ".less",
        ".json", ".yaml", ".yml", ".toml",
        ".md", ".mdx", ".txt",
        ".sql", ".graphql", ".gql",
        ".sh", ".bash", ".zsh",
        ".dockerfile", ".tf", ".hcl",
    }
)

# Files recognized by name rather than extension
CONVENTION_FILENAMES = frozenset(
    {"Dockerfile", "Makefile", "Procfile", "Rakefile", "Gemfile", ".env.example"}
)

# Changes to these are reported, but their content must never leave the machine
PRIVACY_PATTERNS = (
    ".env",
    ".env.local",
    ".env.production",
    "secrets",
    "credentials",
    "private",
    ".pem",
    ".key",
    ".cert",
    ".p12",
)

MAX_SUMMARY_CATEGORIES = 4


def path_parts(rel_path: str) -> List[str]:
    """Split a relative path on either separator."""
    return [part for part in rel_path.replace("\\", "/").split("/") if part]


def extension_of(rel_path: str) -> str:
    return PurePath(rel_path.replace("\\", "/")).suffix


def is_privacy_sensitive(rel_path: str) -> bool:
    """Check if a path looks like it holds secrets or credentials."""
    parts = path_parts(rel_path)
    basename = parts[-1] if parts else ""
    lowered = rel_path.lower()
    for pattern in PRIVACY_PATTERNS:
        if basename == pattern or basename.startswith(pattern) or pattern in lowered:
            return True
    return False


class ChangeFilter:
    """Decides which raw filesystem notifications are worth reporting."""

    def __init__(self, custom_patterns: Iterable[str] = ()):
        self.custom_patterns: List[str] = []
        self.set_custom_patterns(custom_patterns)

    def set_custom_patterns(self, patterns: Iterable[str]) -> None:
        """Replace the user-supplied patterns merged with the defaults."""
        self.custom_patterns = [p for p in (str(p).strip() for p in patterns) if p]

    @property
    def patterns(self) -> List[str]:
        return [*DEFAULT_IGNORE_PATTERNS, *self.custom_patterns]

    def should_ignore(self, rel_path: str) -> bool:
        """Check if any path segment equals or starts with an ignore pattern."""
        patterns = self.patterns
        for part in path_parts(rel_path):
            for pattern in patterns:
                if part == pattern or part.startswith(pattern):
                    return True
        return False

    @staticmethod
    def has_watched_extension(rel_path: str) -> bool:
        parts = path_parts(rel_path)
        if not parts:
            return False
        if parts[-1] in CONVENTION_FILENAMES:
            return True
        return extension_of(rel_path).lower() in WATCHED_EXTENSIONS

    def is_relevant(self, rel_path: str) -> bool:
        return not self.should_ignore(rel_path) and self.has_watched_extension(rel_path)


def build_change_summary(files: Sequence[FileChange]) -> str:
    """Summarize a batch as ``"3 file(s) changed: 2 .py, 1 .md"``."""
    counts = Counter(f.extension or "other" for f in files)
    parts = [f"{count} {ext}" for ext, count in counts.most_common(MAX_SUMMARY_CATEGORIES)]
    return f"{len(files)} file(s) changed: {', '.join(parts)}"
