"""Layered error wrapping and resolution into API result codes."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

KIND_PARAM = "PARAM"
KIND_MODEL = "Model"
KIND_DIRTY_DATA = "Model.DirtyData"
KIND_NULL_DATA = "Model.NullData"
KIND_DEPENDENT_UNREADY = "Model.DependentUnReady"
KIND_EXISTED_DATA = "Model.ExistedData"
KIND_DAO = "DAO"
KIND_AUTHENTICATE_FAIL = "Authentication.Fail"
KIND_AUTHORIZATE_FAIL = "Authorization.Fail"


class ApiError(Exception):
    """An error tagged with the layer (kind) that reported it."""

    def __init__(self, kind: str, inner: BaseException):
        super().__init__(f"{kind}: {inner}")
        self.kind = kind
        self.inner = inner


def _message(msg: str, args: tuple) -> Exception:
    return Exception(msg % args if args else msg)


def _kind_of(err: BaseException | None) -> str:
    if err is None:
        return ""
    return str(err).split(": ", 1)[0]


def cause(err: BaseException | None) -> BaseException | None:
    """Return the innermost error beneath all wrapping layers."""
    while isinstance(err, ApiError):
        err = err.inner
    return err


def _wrap_once(err: BaseException | None, kind: str) -> BaseException | None:
    if err is None:
        return None
    if _kind_of(err) == kind:
        return err
    return ApiError(kind, err)


def wrap_param_error(err):
    """Mark an error as caused by illegal request parameters."""
    return _wrap_once(err, KIND_PARAM)


def wrap_param_error_with_msg(tip, *args):
    return wrap_param_error(_message(tip, args))


def wrap_dao_error(err):
    """Mark an error as raised by the storage layer."""
    return _wrap_once(err, KIND_DAO)


def wrap_model_error(err):
    """Mark an error as raised by the business layer."""
    return _wrap_once(err, KIND_MODEL)


def wrap_model_error_with_msg(msg, *args):
    return ApiError(KIND_MODEL, _message(msg, args))


def wrap_authorizate_fail_error_with_msg(msg, *args):
    return ApiError(KIND_AUTHORIZATE_FAIL, _message(msg, args))


def wrap_authenticate_fail_error_with_msg(msg, *args):
    return ApiError(KIND_AUTHENTICATE_FAIL, _message(msg, args))


def wrap_dependent_unready_error_with_msg(msg, *args):
    return ApiError(KIND_DEPENDENT_UNREADY, _message(msg, args))


def wrap_record_not_exist(topic=None):
    msg = "Record Not Exist"
    if topic is not None:
        msg = f"{topic} {msg}"
    return ApiError(KIND_NULL_DATA, Exception(msg))


def wrap_record_existed(topic=None):
    msg = "Record Existed"
    if topic is not None:
        msg = f"{topic} {msg}"
    return ApiError(KIND_EXISTED_DATA, Exception(msg))


def wrap_dirty_data_error(err):
    """Mark an error as caused by inconsistent stored data."""
    return _wrap_once(err, KIND_DIRTY_DATA)


def wrap_dirty_data_error_with_msg(msg, *args):
    return ApiError(KIND_DIRTY_DATA, _message(msg, args))


@dataclass
class ResolveResult:
    """The status code, type and message an error maps to."""

    err_no: int = 500
    type: str = ""
    msg: str = ""
    err: BaseException | None = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return json.dumps(
            {"ErrNo": self.err_no, "Type": self.type, "Msg": self.msg},
            separators=(",", ":"),
        )

    def full_msg(self) -> str:
        """Innermost message followed by each wrapping layer, one per line."""
        kinds = []
        err = self.err
        while isinstance(err, ApiError):
            kinds.append(err.kind)
            err = err.inner
        lines = [str(err)] + list(reversed(kinds))
        return "\n".join(lines)


_KIND_RESULTS = {
    KIND_PARAM: (422, "Param Illegal"),
    KIND_MODEL: (500, "Biz Exception"),
    KIND_DIRTY_DATA: (500, "Inner Dirty Data"),
    KIND_DAO: (500, "Database Exception"),
    KIND_NULL_DATA: (404, "Record Not Exist"),
    KIND_EXISTED_DATA: (555, "Record Existed"),
    KIND_DEPENDENT_UNREADY: (510, "Dependent Not Ready"),
    KIND_AUTHENTICATE_FAIL: (401, "Authenticate Fail"),
    KIND_AUTHORIZATE_FAIL: (402, "Authorizate Fail"),
}


def resolve(err):
    """Map an error to its API result, or None when there is no error."""
    if err is None:
        return None
    kind = _kind_of(err)
    err_no, type_ = _KIND_RESULTS.get(kind, (500, "Unknown Exception"))
    msg = str(err) if kind == KIND_DEPENDENT_UNREADY else str(cause(err))
    return ResolveResult(err_no=err_no, type=type_, msg=msg, err=err)