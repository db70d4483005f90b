import pytest

from contest_judge.languages import (
    ExecutionKind, Language, LANGUAGES, UnsupportedLanguageError, resolve_language,
)


@pytest.mark.parametrize("tag, language", [
    ("PYTHON", Language.PYTHON),
    ("python", Language.PYTHON),
    ("python3", Language.PYTHON),
    ("CPP", Language.CPP),
    ("c++", Language.CPP),
    (" Java ", Language.JAVA),
    ("C", Language.C),
    (Language.JAVA, Language.JAVA),
])
def test_resolve_language(tag, language):
    assert resolve_language(tag).language == language


@pytest.mark.parametrize("tag", ["RUST", "", None, "pascal"])
def test_unsupported_language(tag):
    with pytest.raises(UnsupportedLanguageError):
        resolve_language(tag)


def test_every_language_has_a_strategy():
    assert set(LANGUAGES) == set(Language)


def test_source_filenames():
    assert LANGUAGES[Language.JAVA].source_file == "Solution.java"
    assert LANGUAGES[Language.PYTHON].source_file == "solution.py"
    assert LANGUAGES[Language.CPP].source_file == "solution.cpp"
    assert LANGUAGES[Language.C].source_file == "solution.c"


def test_execution_kinds():
    assert not resolve_language("PYTHON").is_compiled
    assert resolve_language("PYTHON").kind is ExecutionKind.INTERPRETED
    for tag in ("JAVA", "CPP", "C"):
        spec = resolve_language(tag)
        assert spec.is_compiled
        assert spec.source_file in spec.compile_command
