"""Supported languages and how the sandbox image builds and runs each of them.

The sandbox image ships one run script per language family; the script infers
the compiler or interpreter from the source file extension, so every language
has exactly one canonical source filename.
"""
import enum
from dataclasses import dataclass
from typing import Tuple, Union

from .config import SANDBOX_SCRIPT_DIR


class UnsupportedLanguageError(ValueError):
    pass


class ExecutionKind(str, enum.Enum):
    COMPILED = "compiled"
    INTERPRETED = "interpreted"


class Language(str, enum.Enum):
    JAVA = "JAVA"
    PYTHON = "PYTHON"
    CPP = "CPP"
    C = "C"


@dataclass(frozen=True)
class LanguageSpec:
    language: Language
    kind: ExecutionKind
    source_file: str
    run_script: str
    compile_command: Tuple[str, ...] = ()

    @property
    def is_compiled(self) -> bool:
        return self.kind is ExecutionKind.COMPILED


LANGUAGES = {
    Language.JAVA: LanguageSpec(
        Language.JAVA, ExecutionKind.COMPILED, "Solution.java",
        f"{SANDBOX_SCRIPT_DIR}/run_java.sh",
        ("javac", "-encoding", "UTF-8", "Solution.java"),
    ),
    Language.PYTHON: LanguageSpec(
        Language.PYTHON, ExecutionKind.INTERPRETED, "solution.py",
        f"{SANDBOX_SCRIPT_DIR}/run_python.sh",
    ),
    Language.CPP: LanguageSpec(
        Language.CPP, ExecutionKind.COMPILED, "solution.cpp",
        f"{SANDBOX_SCRIPT_DIR}/run_cpp.sh",
        ("g++", "-std=c++17", "-O2", "-o", "solution", "solution.cpp", "-lm"),
    ),
    Language.C: LanguageSpec(
        Language.C, ExecutionKind.COMPILED, "solution.c",
        f"{SANDBOX_SCRIPT_DIR}/run_cpp.sh",
        ("gcc", "-std=c11", "-O2", "-o", "solution", "solution.c", "-lm"),
    ),
}

_ALIASES = {
    "c++": Language.CPP,
    "python3": Language.PYTHON,
}


def resolve_language(tag: Union[str, Language]) -> LanguageSpec:
    """Map a stored language tag to its execution strategy."""
    if isinstance(tag, Language):
        return LANGUAGES[tag]
    key = (tag or "").strip()
    language = _ALIASES.get(key.lower())
    if language is None:
        try:
            language = Language(key.upper())
        except ValueError:
            raise UnsupportedLanguageError(f"Unsupported language: {tag}") from None
    return LANGUAGES[language]
