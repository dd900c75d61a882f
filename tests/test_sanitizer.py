from tutor_repl.sandbox.sanitizer import Sanitizer


def test_blocks_dangerous_python_imports():
    sanitized = Sanitizer().sanitize('import os\nimport subprocess\nprint("hello")')

    assert sanitized == '# import os blocked\n# import subprocess blocked\nprint("hello")'


def test_blocks_exec_and_eval_calls():
    sanitized = Sanitizer().sanitize('exec("print(1)")\neval("1 + 1")')

    assert "# exec() blocked" in sanitized
    assert "# eval() blocked" in sanitized


def test_preserves_line_count():
    code = "x = 1\nimport os\n\nfrom subprocess import run\ny = eval('2')\nprint(x)"

    sanitized = Sanitizer().sanitize(code)

    assert sanitized.count("\n") == code.count("\n")
    assert sanitized.splitlines()[0] == "x = 1"
    assert sanitized.splitlines()[-1] == "print(x)"


def test_does_not_touch_similar_names():
    code = "import osmosis\nretrieval(data)\nmy_exec = 1"

    assert Sanitizer().sanitize(code) == code


def test_uses_language_comment_prefix():
    sanitized = Sanitizer().sanitize("eval('1')", "javascript")

    assert sanitized == "// eval() blocked'1')"


def test_ruby_rules():
    sanitized = Sanitizer().sanitize('system("ls")\nputs 1', "ruby")

    assert sanitized == '# system() blocked"ls")\nputs 1'


def test_strips_trailing_whitespace_only():
    assert Sanitizer().sanitize("\nprint(1)   \n\n") == "\nprint(1)"


def test_custom_rules():
    sanitizer = Sanitizer({"python": [(r"\bopen[ \t]*\(", "{comment} open() blocked")]})

    assert sanitizer.sanitize("open('x')") == "# open() blocked'x')"
    assert sanitizer.sanitize("import os") == "import os"


def test_unknown_language_passes_through():
    assert Sanitizer().sanitize("eval(1)", "brainfuck") == "eval(1)"


def test_rules_are_case_sensitive():
    code = "Eval(1)\nEXEC(x)\nImport os"

    assert Sanitizer().sanitize(code) == code
    assert Sanitizer().sanitize("Eval(1)", "javascript") == "Eval(1)"
