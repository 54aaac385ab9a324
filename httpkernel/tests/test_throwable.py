# httpkernel/tests/test_throwable.py
import os

from httpkernel.throwable import PROJECT_DIR_PLACEHOLDER, SafeThrowableFactory

PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class CodedError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


def _raise(exc):
    raise exc


def _capture(exc):
    try:
        _raise(exc)
    except Exception as e:
        return e


def _chained():
    try:
        try:
            _raise(KeyError("inner"))
        except KeyError as e:
            raise ValueError("middle") from e
    except ValueError:
        try:
            raise RuntimeError(f"outer at {PROJECT_DIR}/somewhere.py")
        except RuntimeError as e:
            return e


def test_paths_never_expose_project_dir():
    snap = SafeThrowableFactory(PROJECT_DIR).create(_chained())
    for level in snap.chain():
        assert not level.file.startswith(PROJECT_DIR)
        assert PROJECT_DIR + "/" not in level.message
        for frame in level.trace:
            assert not frame.file.startswith(PROJECT_DIR)
    assert snap.file.startswith(PROJECT_DIR_PLACEHOLDER)
    assert PROJECT_DIR_PLACEHOLDER + "somewhere.py" in snap.message


def test_chain_follows_cause_and_context():
    snap = SafeThrowableFactory(PROJECT_DIR).create(_chained())
    assert [t.class_name for t in snap.chain()] == ["RuntimeError", "ValueError", "KeyError"]
    assert snap.previous.message == "middle"


def test_non_numeric_code_is_folded_into_message():
    snap = SafeThrowableFactory(PROJECT_DIR).create(_capture(CodedError("duplicate key", "23000")))
    assert snap.code == 0
    assert snap.message == "23000 - duplicate key"
    assert snap.native_code == "23000"


def test_integer_code_passes_through():
    snap = SafeThrowableFactory(PROJECT_DIR).create(_capture(CodedError("gone", 410)))
    assert snap.code == 410
    assert snap.native_code is None
    assert snap.message == "gone"


def test_os_error_uses_errno():
    snap = SafeThrowableFactory(PROJECT_DIR).create(FileNotFoundError(2, "missing"))
    assert snap.code == 2


def test_class_names_are_qualified_outside_builtins():
    snap = SafeThrowableFactory(PROJECT_DIR).create(_capture(CodedError("x", 1)))
    assert snap.class_name.endswith("CodedError")
    assert "." in snap.class_name


def test_cycles_and_depth_are_bounded():
    a = ValueError("a")
    b = ValueError("b")
    a.__cause__ = b
    b.__cause__ = a
    assert len(SafeThrowableFactory(PROJECT_DIR).create(a).chain()) == 2

    head = ValueError("0")
    cur = head
    for i in range(1, 50):
        nxt = ValueError(str(i))
        cur.__cause__ = nxt
        cur = nxt
    assert len(SafeThrowableFactory(PROJECT_DIR, max_depth=16).create(head).chain()) == 16


def test_args_are_redacted_by_default():
    exc = _capture(CodedError("x", 1))
    redacted = SafeThrowableFactory(PROJECT_DIR).create(exc)
    assert all(f.args is None for f in redacted.trace)

    typed = SafeThrowableFactory(PROJECT_DIR, redact_args=False).create(exc)
    raising = [f for f in typed.get_trace(include_args=True) if f.function.endswith("_raise")]
    assert raising and raising[0].args == ("CodedError",)
    assert all(f.args is None for f in typed.get_trace())


def test_most_recent_frame_first():
    snap = SafeThrowableFactory(PROJECT_DIR).create(_capture(CodedError("x", 1)))
    assert snap.trace[0].function.endswith("_raise")
    assert snap.line == snap.trace[0].line


def test_rendering():
    snap = SafeThrowableFactory(PROJECT_DIR).create(_chained())
    text = str(snap)
    assert text.startswith("Class: RuntimeError")
    assert "Stack trace:" in text
    assert "Caused by:" in text
    d = snap.to_dict()
    assert set(d) == {"class", "code", "native_code", "message", "file", "line", "trace", "previous"}
    assert d["previous"]["class"] == "ValueError"
