"""
Supported languages, their runtime images, and how to invoke code inside them.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


# =============================================================================
# PYTHON DRIVER
# =============================================================================

# Runs one submission against the state left by the previous one.
# User code runs in a fresh module registered as __main__, so functions and
# classes it defines pickle by reference. Their source is kept and executed
# again on the next run before any values that refer to them are unpickled.
# Modules are not picklable, so imported names are remembered and re-imported.
# A trailing expression statement is echoed like the interactive prompt does.
# REPL_STATE_PATH moves the state file (default /tmp/.repl_state.pkl).
PYTHON_DRIVER = """\
import ast, importlib, os, pickle, sys, types
_state_path = os.environ.get('REPL_STATE_PATH', '/tmp/.repl_state.pkl')
try:
    with open(_state_path, 'rb') as _fh:
        _state = pickle.load(_fh)
except Exception:
    _state = {}
_driver = sys.modules['__main__']  # keep the driver's globals alive
_main = types.ModuleType('__main__')
sys.modules['__main__'] = _main
_ns = _main.__dict__
for _name, _module in _state.get('modules', {}).items():
    try:
        _ns[_name] = importlib.import_module(_module)
    except Exception:
        pass
_defs = dict(_state.get('defs', {}))
_pending = dict(_state.get('values', {}))
for _name, _blob in list(_pending.items()):
    try:
        _ns[_name] = pickle.loads(_blob)
        del _pending[_name]
    except Exception:
        pass
for _source in _defs.values():
    try:
        exec(compile(_source, '<repl>', 'exec'), _ns)
    except Exception:
        pass
for _name, _blob in _pending.items():
    try:
        _ns[_name] = pickle.loads(_blob)
    except Exception:
        pass
_source = sys.argv[1]
_tree = ast.parse(_source, '<repl>', 'exec')
_lines = _source.splitlines()
for _node in _tree.body:
    if isinstance(_node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
        _start = min([_d.lineno for _d in _node.decorator_list] + [_node.lineno])
        _defs.pop(_node.name, None)
        _defs[_node.name] = '\\n'.join(_lines[_start - 1:_node.end_lineno])
_tail = None
if _tree.body and isinstance(_tree.body[-1], ast.Expr):
    _tail = ast.Expression(_tree.body.pop().value)
try:
    exec(compile(_tree, '<repl>', 'exec'), _ns)
    if _tail is not None:
        _value = eval(compile(_tail, '<repl>', 'eval'), _ns)
        if _value is not None:
            print(repr(_value))
finally:
    _modules, _values = {}, {}
    for _name in list(_defs):
        if _name not in _ns:
            del _defs[_name]
    for _name, _value in list(_ns.items()):
        if _name.startswith('__'):
            continue
        if isinstance(_value, types.ModuleType):
            _modules[_name] = _value.__name__
            continue
        if (_name in _defs and getattr(_value, '__module__', None) == '__main__'
                and getattr(_value, '__qualname__', None) == _name):
            continue
        _defs.pop(_name, None)
        try:
            _values[_name] = pickle.dumps(_value)
        except Exception:
            continue
    with open(_state_path, 'wb') as _fh:
        pickle.dump({'modules': _modules, 'defs': _defs, 'values': _values}, _fh)
"""


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Language:
    """A language the REPL can run."""
    id: str
    name: str
    file_extension: str
    image: str
    command: Tuple[str, ...]  # code is appended as the last argument
    comment_prefix: str = "#"

    def build_command(self, code: str) -> List[str]:
        """Build the exec command that runs ``code`` non-interactively."""
        return [*self.command, code]


# =============================================================================
# REGISTRY
# =============================================================================

SUPPORTED_LANGUAGES: Dict[str, Language] = {
    "python": Language(
        id="python",
        name="Python",
        file_extension=".py",
        image="python:3.11-slim",
        command=("python3", "-c", PYTHON_DRIVER),
    ),
    "javascript": Language(
        id="javascript",
        name="JavaScript",
        file_extension=".js",
        image="node:18-slim",
        command=("node", "-e"),
        comment_prefix="//",
    ),
    "typescript": Language(
        id="typescript",
        name="TypeScript",
        file_extension=".ts",
        # The image must ship tsx; override with REPL_IMAGE_TYPESCRIPT.
        image="node:18-slim",
        command=("npx", "--no-install", "tsx", "-e"),
        comment_prefix="//",
    ),
    "ruby": Language(
        id="ruby",
        name="Ruby",
        file_extension=".rb",
        image="ruby:3.2-slim",
        command=("ruby", "-e"),
    ),
}

DEFAULT_LANGUAGE = "python"


def get_language(language_id: str) -> Optional[Language]:
    """Look up a language by id, or None if unsupported."""
    if not isinstance(language_id, str):
        return None
    return SUPPORTED_LANGUAGES.get(language_id)


def is_language_supported(language_id: str) -> bool:
    return get_language(language_id) is not None


def supported_language_ids() -> List[str]:
    return list(SUPPORTED_LANGUAGES)
