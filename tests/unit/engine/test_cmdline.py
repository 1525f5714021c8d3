import pytest

from scenariokit.engine.cmdline import format_command, normalize_run_flags, quote_if_needed, tokenize


# 1. Splitting
def test_tokenize_splits_on_whitespace_runs():
    assert tokenize("  a b\t\tc \n") == ["a", "b", "c"]


def test_tokenize_empty_input():
    assert tokenize("") == []
    assert tokenize("   \t ") == []


def test_tokenize_quotes_group_and_are_dropped():
    assert tokenize('--name "two words" x') == ["--name", "two words", "x"]
    assert tokenize("--name 'two words'") == ["--name", "two words"]
    assert tokenize('pre"fix mid"post') == ["prefix midpost"]


def test_tokenize_other_quote_kind_is_literal_inside_quotes():
    assert tokenize("\"it's\" 'say \"hi\"'") == ["it's", 'say "hi"']


def test_tokenize_backslash_escapes_next_char():
    assert tokenize(r"a\ b c") == ["a b", "c"]
    assert tokenize(r"\"quoted\"") == ['"quoted"']


# 2. Edge cases
def test_tokenize_keeps_trailing_lone_backslash():
    assert tokenize("abc\\") == ["abc\\"]
    assert tokenize("a \\") == ["a", "\\"]


def test_tokenize_unterminated_quote_runs_to_end():
    assert tokenize('say "hello world') == ["say", "hello world"]


def test_tokenize_empty_quoted_token_is_kept():
    assert tokenize('a "" b') == ["a", "", "b"]


# 3. Display quoting
@pytest.mark.parametrize("token", ["plain", "two words", "tab\tsep", "--flag=1", "/tmp/some dir/x.py"])
def test_quote_if_needed_round_trips_through_tokenize(token):
    assert tokenize(quote_if_needed(token)) == [token]


def test_quote_if_needed_only_quotes_whitespace():
    assert quote_if_needed("abc") == "abc"
    assert quote_if_needed("a b") == '"a b"'


def test_format_command():
    assert format_command("python", ["run.py", "-s", "my scenario"]) == 'python run.py -s "my scenario"'


# 4. Flag normalization
def test_normalize_run_flags_collapses_whitespace():
    assert normalize_run_flags("  --a   --b\t1 \n") == "--a --b 1"
    assert normalize_run_flags("   ") == ""
