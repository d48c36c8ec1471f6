"""Languages the code chunker knows, and the file extensions indexed for each."""

from __future__ import annotations

from enum import Enum


class SupportedLanguage(str, Enum):
    PYTHON = "python"
    RUST = "rust"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    GO = "go"
    JAVA = "java"
    RUBY = "ruby"

    @classmethod
    def from_name(cls, name: str) -> SupportedLanguage:
        """Parse a language name (case-insensitive, common aliases accepted).

        Raises:
            ValueError: If the language is not supported.
        """
        key = name.strip().lower()
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            supported = ", ".join(lang.value for lang in cls)
            raise ValueError(
                f"Unsupported language '{name}'. Supported: {supported}"
            ) from None

    @property
    def file_extensions(self) -> list[str]:
        return list(_EXTENSIONS[self])


_ALIASES: dict[str, str] = {
    "py": "python",
    "rs": "rust",
    "js": "javascript",
    "ts": "typescript",
    "golang": "go",
    "rb": "ruby",
}

_EXTENSIONS: dict[SupportedLanguage, tuple[str, ...]] = {
    SupportedLanguage.PYTHON: ("py",),
    SupportedLanguage.RUST: ("rs",),
    SupportedLanguage.JAVASCRIPT: ("js", "jsx", "mjs", "cjs"),
    SupportedLanguage.TYPESCRIPT: ("ts", "tsx", "js", "jsx"),
    SupportedLanguage.GO: ("go",),
    SupportedLanguage.JAVA: ("java",),
    SupportedLanguage.RUBY: ("rb",),
}
