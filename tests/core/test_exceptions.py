"""Smoke tests for DirectDrop exceptions."""

import pytest

from directdrop.core.exceptions import (
    AuthorizationError,
    ConfigurationError,
    DirectDropError,
    HookError,
    ProtocolError,
    RouteNotFoundError,
    SigningError,
    TransferError,
    ValidationError,
)


def test_exception_hierarchy():
    """Test that all exceptions inherit from DirectDropError."""
    for exc in (
        ValidationError,
        AuthorizationError,
        ConfigurationError,
        TransferError,
        RouteNotFoundError,
        ProtocolError,
        HookError,
    ):
        assert issubclass(exc, DirectDropError)
    assert issubclass(SigningError, AuthorizationError)


def test_exceptions_can_be_caught_as_base():
    with pytest.raises(DirectDropError):
        raise SigningError("Test error")


def test_default_codes():
    assert ValidationError("x").code == "VALIDATION_FAILED"
    assert AuthorizationError("x").code == "AUTHORIZATION_FAILED"
    assert SigningError("x").code == "SIGNING_FAILED"
    assert ConfigurationError("x").code == "CONFIG_INVALID"
    assert TransferError("x").code == "TRANSFER_FAILED"
    assert ProtocolError("x").code == "PROTOCOL_ERROR"


def test_to_dict():
    assert ValidationError("too big", code="FILE_TOO_LARGE", path=["avatar"]).to_dict() == {
        "error": "too big",
        "code": "FILE_TOO_LARGE",
        "path": ["avatar"],
    }
    assert TransferError("nope", status_code=403).to_dict() == {
        "error": "nope",
        "code": "TRANSFER_FAILED",
        "status_code": 403,
    }


def test_route_not_found_message():
    error = RouteNotFoundError("avatar")
    assert error.message == 'Route "avatar" not found'
    assert error.route_name == "avatar"
    assert error.code == "ROUTE_NOT_FOUND"
