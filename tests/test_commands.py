import sys

import pytest

from rt_patcher.commands import run_cmd
from rt_patcher.errors import ExternalToolError


def python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_run_cmd_success(tmp_path):
    result = run_cmd(python("open('marker', 'w').close()"), cwd=tmp_path)
    assert result.returncode == 0
    assert (tmp_path / "marker").exists()


def test_run_cmd_nonzero_raises():
    with pytest.raises(ExternalToolError) as excinfo:
        run_cmd(python("import sys; sys.exit(3)"))
    assert excinfo.value.returncode == 3
    assert excinfo.value.argv[0] == sys.executable
    assert "Command failed (3)" in str(excinfo.value)


def test_run_cmd_unchecked():
    assert run_cmd(python("import sys; sys.exit(2)"), check=False).returncode == 2


def test_run_cmd_passes_env(tmp_path):
    run_cmd(
        python("import os; open('env', 'w').write(os.environ['RT_TEST_VALUE'])"),
        cwd=tmp_path,
        env={"RT_TEST_VALUE": "42"},
    )
    assert (tmp_path / "env").read_text() == "42"


def test_run_cmd_answers_prompts_with_defaults():
    # Reads several prompts; each must get an empty answer.
    code = "import sys; assert all(sys.stdin.readline() == '\\n' for _ in range(5))"
    assert run_cmd(python(code), answer_defaults=True).returncode == 0
