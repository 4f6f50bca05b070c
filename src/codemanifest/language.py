"""Language detection: file path → language id, by extension or basename."""

from pathlib import PurePosixPath

_EXT_TO_LANG: dict[str, str] = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".pyi": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".scala": "scala",
    ".sc": "scala",
    ".ex": "elixir",
    ".exs": "elixir",
    ".dart": "dart",
    ".lua": "lua",
    ".zig": "zig",
    ".hs": "haskell",
    ".lhs": "haskell",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".cc": "cpp",
    ".hpp": "cpp",
    ".hxx": "cpp",
    # config / markup
    ".yaml": "yaml",
    ".yml": "yaml",
    ".sh": "shell",
    ".bash": "shell",
    ".zsh": "shell",
    ".tf": "hcl",
    ".hcl": "hcl",
    ".sql": "sql",
    ".md": "markdown",
    ".mdx": "markdown",
    ".dockerfile": "dockerfile",
    ".toml": "toml",
    ".json": "json",
    ".xml": "xml",
}

_DISPLAY_NAMES: dict[str, str] = {
    "typescript": "TypeScript",
    "javascript": "JavaScript",
    "python": "Python",
    "go": "Go",
    "rust": "Rust",
    "java": "Java",
    "csharp": "C#",
    "ruby": "Ruby",
    "php": "PHP",
    "swift": "Swift",
    "kotlin": "Kotlin",
    "scala": "Scala",
    "elixir": "Elixir",
    "dart": "Dart",
    "lua": "Lua",
    "zig": "Zig",
    "haskell": "Haskell",
    "c": "C",
    "cpp": "C++",
    "yaml": "YAML",
    "shell": "Shell",
    "hcl": "HCL",
    "sql": "SQL",
    "markdown": "Markdown",
    "dockerfile": "Dockerfile",
    "toml": "TOML",
    "json": "JSON",
    "xml": "XML",
}


def detect_language(path: str) -> str | None:
    """Return the language id for ``path``, or None when it is not recognised."""
    name = PurePosixPath(path.replace("\\", "/")).name
    if name == "Dockerfile" or name.startswith("Dockerfile."):
        return "dockerfile"
    dot = name.rfind(".")
    if dot == -1:
        return None
    return _EXT_TO_LANG.get(name[dot:].lower())


def supported_extensions() -> list[str]:
    return list(_EXT_TO_LANG)


def supported_languages() -> list[str]:
    return list(dict.fromkeys(_EXT_TO_LANG.values()))


def display_name(language: str) -> str:
    return _DISPLAY_NAMES.get(language, language)
