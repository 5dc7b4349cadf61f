"""Script step sandbox.

Runs inline Python source with exactly two crossing points:

    variables  dict of the currently visible workflow variables (read/write)
    log        callable appending a line to the step's log

``print`` is redirected to ``log``. A small set of modules is
pre-imported (json, re, math, random, datetime, base64, hashlib);
``import`` statements are not available. The step tree, transport and
engine objects are never exposed.
"""

import base64
import builtins
import datetime
import hashlib
import json
import math
import random
import re
from typing import Callable, Dict, Protocol

from core.exceptions import ScriptError

_ALLOWED_BUILTINS = (
    "abs", "all", "any", "bool", "dict", "enumerate", "filter", "float",
    "format", "int", "isinstance", "len", "list", "map", "max", "min",
    "range", "repr", "reversed", "round", "set", "sorted", "str", "sum",
    "tuple", "zip", "Exception", "ValueError", "KeyError", "TypeError",
)

SAFE_BUILTINS = {name: getattr(builtins, name) for name in _ALLOWED_BUILTINS}


class ScriptSandbox(Protocol):
    def run(self, source: str, variables: Dict[str, str], log: Callable[[str], None]) -> None:
        """Run to completion or raise ScriptError."""
        ...


class PythonScriptSandbox:
    """Execute a script step's source with ``exec`` in a restricted namespace."""

    def run(self, source: str, variables: Dict[str, str], log: Callable[[str], None]) -> None:
        try:
            code = compile(source, "<script>", "exec")
        except SyntaxError as e:
            raise ScriptError(f"Script syntax error: {e.msg} (line {e.lineno})") from e

        namespace = {
            "__builtins__": SAFE_BUILTINS,
            "variables": variables,
            "log": log,
            "print": lambda *a, **kw: log(" ".join(str(x) for x in a)),
            "json": json,
            "re": re,
            "math": math,
            "random": random,
            "datetime": datetime,
            "base64": base64,
            "hashlib": hashlib,
        }

        try:
            exec(code, namespace)
        except Exception as e:
            raise ScriptError(f"Script error: {type(e).__name__}: {e}") from e
