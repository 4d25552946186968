import pytest

from driftbot.analysis.rules import DEFAULT_RULES, evaluate_line


def _ids(filename, content):
    return [finding.id for finding in evaluate_line(filename, 1, content)]


@pytest.mark.parametrize(
    "content",
    [
        'const token = "abc123";',
        "password: 'hunter2'",
        'API_KEY = "sk-live-123"',
        "client_secret='shh'",
    ],
)
def test_hardcoded_secret_detected(content):
    assert _ids("src/app.js", content) == ["security-hardcoded-secret"]


def test_secret_read_from_environment_is_not_flagged():
    assert _ids("src/app.py", 'token = os.environ["TOKEN"]') == []


@pytest.mark.parametrize(
    "content",
    [
        'cursor.execute("SELECT * FROM users WHERE id=" + user_id)',
        "db.query('DELETE FROM t WHERE x=' + x)",
        'sql = f"/* {user} */ SELECT * FROM users"',
    ],
)
def test_sql_injection_detected(content):
    assert _ids("db.py", content) == ["security-sql-injection"]


def test_parameterized_query_is_not_flagged():
    assert _ids("db.py", 'cursor.execute("SELECT * FROM users WHERE id = %s", (user_id,))') == []


def test_console_log_flagged_outside_test_files():
    findings = list(evaluate_line("src/app.js", 4, "console.log(value);"))

    assert [f.id for f in findings] == ["pattern-console-log"]
    assert findings[0].severity == "warning"
    assert findings[0].gate == "pattern-drift"
    assert findings[0].line == 4


def test_console_log_ignored_in_test_files():
    assert _ids("src/app.test.js", "console.debug(value);") == []


def test_deprecated_react_lifecycle():
    findings = list(evaluate_line("Widget.jsx", 2, "  componentWillMount() {"))

    assert [f.id for f in findings] == ["stale-react-lifecycle"]
    assert findings[0].gate == "staleness-drift"


@pytest.mark.parametrize("content", ["// TODO: fix this", "//fixme: later", "x = 1; // HACK: temp"])
def test_todo_comment_is_info(content):
    findings = list(evaluate_line("a.js", 1, content))

    assert [f.severity for f in findings] == ["info"]
    assert findings[0].id == "pattern-todo-comment"
    assert findings[0].suggestion is None


def test_hash_style_todo_is_not_matched():
    assert _ids("a.py", "# TODO: fix this") == []


def test_multiple_rules_fire_in_rule_order():
    content = 'console.log(password = "x")'

    assert _ids("app.js", content) == ["security-hardcoded-secret", "pattern-console-log"]


def test_rule_ids_are_unique():
    ids = [rule.id for rule in DEFAULT_RULES]
    assert len(ids) == len(set(ids))
