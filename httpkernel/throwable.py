# FILE: httpkernel/throwable.py
from __future__ import annotations

import builtins
import traceback
from dataclasses import dataclass, replace
from types import TracebackType
from typing import Any, Dict, List, Optional, Tuple

# Stable token that replaces the project root in every rendered path.
PROJECT_DIR_PLACEHOLDER = "project_dir:"

_DEFAULT_MAX_DEPTH = 16


# =============================================================================
# Snapshot model
# =============================================================================


@dataclass(frozen=True)
class TraceFrame:
    file: str
    line: int
    function: str
    # Argument type names only; raw values are never captured.
    args: Optional[Tuple[str, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"file": self.file, "line": self.line, "function": self.function}
        if self.args is not None:
            out["args"] = list(self.args)
        return out


@dataclass(frozen=True)
class SafeThrowable:
    """
    Display-safe snapshot of an exception and its causal chain.

    `code` is always an int. A non-integer native code is folded into the
    message and kept verbatim in `native_code`.
    """

    class_name: str
    code: int
    message: str
    file: str
    line: int
    trace: Tuple[TraceFrame, ...] = ()
    previous: Optional["SafeThrowable"] = None
    native_code: Optional[str] = None

    def get_trace(self, include_args: bool = False) -> Tuple[TraceFrame, ...]:
        if include_args:
            return self.trace
        return tuple(replace(f, args=None) if f.args is not None else f for f in self.trace)

    def get_trace_as_string(self, include_args: bool = False) -> str:
        lines = []
        for i, frame in enumerate(self.get_trace(include_args)):
            args = ", ".join(frame.args or ())
            lines.append(f"#{i} {frame.file or '[internal]'}({frame.line}): {frame.function}({args})")
        return "\n".join(lines)

    def chain(self) -> List["SafeThrowable"]:
        out: List[SafeThrowable] = []
        cur: Optional[SafeThrowable] = self
        while cur is not None:
            out.append(cur)
            cur = cur.previous
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "class": self.class_name,
            "code": self.code,
            "native_code": self.native_code,
            "message": self.message,
            "file": self.file,
            "line": self.line,
            "trace": [f.to_dict() for f in self.get_trace()],
            "previous": self.previous.to_dict() if self.previous is not None else None,
        }

    def __str__(self) -> str:
        out = f"Class: {self.class_name}\n"
        out += f"Message: {self.message}\n"
        out += f"Code: {self.code}\n"
        out += f"File: {self.file} ({self.line})\n\n"
        out += "Stack trace:\n" + self.get_trace_as_string() + "\n"
        if self.previous is not None:
            out += "\nCaused by:\n" + str(self.previous)
        return out


# =============================================================================
# Factory
# =============================================================================


def _cause_of(exc: BaseException) -> Optional[BaseException]:
    if exc.__cause__ is not None:
        return exc.__cause__
    if exc.__context__ is not None and not exc.__suppress_context__:
        return exc.__context__
    return None


def _class_name(exc: BaseException) -> str:
    cls = type(exc)
    if cls.__module__ == builtins.__name__:
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def _native_code(exc: BaseException) -> Any:
    code = getattr(exc, "code", None)
    if code is None and isinstance(exc, OSError):
        code = exc.errno
    return code


class SafeThrowableFactory:
    """
    Builds SafeThrowable snapshots.

    The causal chain is walked iteratively, bounded by `max_depth` and
    guarded against cycles. Every occurrence of `project_dir/` in file
    paths and messages is replaced by PROJECT_DIR_PLACEHOLDER.
    """

    def __init__(
        self,
        project_dir: str,
        *,
        redact_args: bool = True,
        max_depth: int = _DEFAULT_MAX_DEPTH,
        placeholder: str = PROJECT_DIR_PLACEHOLDER,
    ):
        self.project_dir = (project_dir or "").rstrip("/\\")
        self.redact_args = bool(redact_args)
        self.max_depth = max(1, int(max_depth))
        self.placeholder = placeholder

    def create(self, exc: BaseException) -> SafeThrowable:
        chain: List[BaseException] = []
        seen = set()
        cur: Optional[BaseException] = exc
        while cur is not None and id(cur) not in seen and len(chain) < self.max_depth:
            seen.add(id(cur))
            chain.append(cur)
            cur = _cause_of(cur)

        snapshot = self._snapshot(chain[-1], None)
        for item in reversed(chain[:-1]):
            snapshot = self._snapshot(item, snapshot)
        return snapshot

    def obfuscate_path(self, path: str) -> str:
        if not path or not self.project_dir:
            return path
        return path.replace(self.project_dir + "/", self.placeholder)

    # ------- helpers -------

    def _snapshot(self, exc: BaseException, previous: Optional[SafeThrowable]) -> SafeThrowable:
        message = self.obfuscate_path(str(exc))
        code, message, native = self._normalize_code(_native_code(exc), message)
        frames = self._frames(exc.__traceback__)
        file, line = (frames[0].file, frames[0].line) if frames else ("", 0)
        return SafeThrowable(
            class_name=_class_name(exc),
            code=code,
            message=message,
            file=file,
            line=line,
            trace=tuple(frames),
            previous=previous,
            native_code=native,
        )

    @staticmethod
    def _normalize_code(raw: Any, message: str) -> Tuple[int, str, Optional[str]]:
        if raw is None:
            return 0, message, None
        if isinstance(raw, int) and not isinstance(raw, bool):
            return int(raw), message, None
        return 0, f"{raw} - {message}", str(raw)

    def _frames(self, tb: Optional[TracebackType]) -> List[TraceFrame]:
        frames: List[TraceFrame] = []
        for frame, lineno in traceback.walk_tb(tb):
            code = frame.f_code
            args: Optional[Tuple[str, ...]] = None
            if not self.redact_args:
                argc = code.co_argcount + code.co_kwonlyargcount
                names = code.co_varnames[:argc]
                args = tuple(type(frame.f_locals.get(n)).__name__ for n in names)
            frames.append(
                TraceFrame(
                    file=self.obfuscate_path(code.co_filename),
                    line=int(lineno or 0),
                    function=getattr(code, "co_qualname", code.co_name),
                    args=args,
                )
            )
        # Most recent call first.
        frames.reverse()
        return frames
