"""
Tests for settings and the CORS policy model
"""

import pytest
from pydantic import ValidationError

from httpin.config import CorsPolicy, Settings, parse_byte_size

from conftest import make_settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.HTTP_NODE_HOST == "0.0.0.0"
    assert settings.HTTP_NODE_CORS is None
    assert settings.HTTP_NODE_MIDDLEWARE is None
    assert settings.API_MAX_LENGTH == 5_242_880
    assert settings.CLOSE_PENDING_TIMEOUT == 10.0
    assert settings.METRICS_ENABLED is False
    assert settings.SHUTDOWN_TIMEOUT is None


def test_from_environment(monkeypatch):
    monkeypatch.setenv("HTTP_NODE_CORS", '{"origin": "https://a.example,https://b.example", "maxAge": 60}')
    monkeypatch.setenv("API_MAX_LENGTH", "1mb")
    monkeypatch.setenv("METRICS_ENABLED", "true")
    monkeypatch.setenv("HTTP_NODE_MIDDLEWARE", "myhooks:auth")
    monkeypatch.setenv("SHUTDOWN_TIMEOUT", "")

    settings = Settings(_env_file=None)

    assert settings.HTTP_NODE_CORS.origin == ["https://a.example", "https://b.example"]
    assert settings.HTTP_NODE_CORS.max_age == 60
    assert settings.API_MAX_LENGTH == 1_048_576
    assert settings.METRICS_ENABLED is True
    assert settings.HTTP_NODE_MIDDLEWARE == "myhooks:auth"
    assert settings.SHUTDOWN_TIMEOUT is None


def test_cors_policy_to_middleware_kwargs():
    policy = CorsPolicy(
        origin="https://a.example",
        methods="get,post",
        allowedHeaders=["x-token"],
        exposedHeaders="x-trace, x-id",
        credentials=True,
    )
    assert policy.to_middleware_kwargs() == {
        "allow_origins": ["https://a.example"],
        "allow_methods": ["GET", "POST"],
        "allow_headers": ["x-token"],
        "allow_credentials": True,
        "expose_headers": ["x-trace", "x-id"],
        "max_age": 600,
    }


def test_cors_policy_reflects_headers_by_default():
    kwargs = CorsPolicy().to_middleware_kwargs()
    assert kwargs["allow_origins"] == ["*"]
    assert kwargs["allow_headers"] == ["*"]
    assert kwargs["allow_methods"] == ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]


def test_make_settings_overrides():
    settings = make_settings(BODY_READ_TIMEOUT=2)
    assert settings.BODY_READ_TIMEOUT == 2.0
    assert settings.HTTP_NODE_HOST == "127.0.0.1"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("100", 100),
        ("100b", 100),
        ("100kb", 102_400),
        ("1MB", 1_048_576),
        ("1.5mb", 1_572_864),
        ("2gb", 2_147_483_648),
        (" 5 mb ", 5_242_880),
        (4096, 4096),
    ],
)
def test_parse_byte_size(value, expected):
    assert parse_byte_size(value) == expected


def test_invalid_byte_size_rejected():
    with pytest.raises(ValidationError):
        make_settings(API_MAX_LENGTH="lots")
