"""Tests for the built-in executors."""

import json

import httpx
import pytest

from flowcraft.errors import ConfigError, ExecutionError
from flowcraft.executors import FilterExecutor, HttpRequestExecutor, TransformExecutor
from flowcraft.executors.paths import get_nested_value, stringify


def test_get_nested_value():
    item = {"user": {"profile": {"age": 30}}}
    assert get_nested_value(item, "user.profile.age") == 30
    assert get_nested_value(item, "user.missing") is None
    assert get_nested_value(item, "user.profile.age.deeper") is None
    assert get_nested_value(item, "") is item


def test_stringify():
    assert stringify("x") == "x"
    assert stringify(1.0) == "1"
    assert stringify(2.5) == "2.5"
    assert stringify(True) == "true"
    assert stringify(None) == "null"
    assert stringify({"a": 1}) == '{"a":1}'


# Filter -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_filter_equals():
    items = [{"status": "active"}, {"status": "inactive"}]
    result = await FilterExecutor().execute(
        {"field": "status", "operator": "equals", "value": "active"},
        {"input": items},
    )
    assert result == [{"status": "active"}]


@pytest.mark.asyncio
async def test_filter_defaults_to_equals_and_matches_numbers_textually():
    items = [{"n": 1}, {"n": 2}]
    result = await FilterExecutor().execute({"field": "n", "value": "1"}, {"input": items})
    assert result == [{"n": 1}]


@pytest.mark.asyncio
async def test_filter_greater_than_is_numeric():
    items = [{"n": 5}, {"n": "10"}, {"n": "abc"}, {"n": 9.5}]
    result = await FilterExecutor().execute(
        {"field": "n", "operator": "greater_than", "value": 6}, {"input": items}
    )
    assert result == [{"n": "10"}, {"n": 9.5}]


@pytest.mark.asyncio
async def test_filter_less_than_with_string_threshold():
    items = [{"n": 2}, {"n": 20}]
    result = await FilterExecutor().execute(
        {"field": "n", "operator": "less_than", "value": "10"}, {"input": items}
    )
    assert result == [{"n": 2}]


@pytest.mark.asyncio
async def test_filter_contains_and_not_equals():
    items = [{"msg": "hello world"}, {"msg": "goodbye"}]
    contains = await FilterExecutor().execute(
        {"field": "msg", "operator": "contains", "value": "world"}, {"input": items}
    )
    not_equals = await FilterExecutor().execute(
        {"field": "msg", "operator": "not_equals", "value": "goodbye"},
        {"input": items},
    )
    assert contains == [{"msg": "hello world"}]
    assert not_equals == [{"msg": "hello world"}]


@pytest.mark.asyncio
async def test_filter_nested_field():
    items = [{"user": {"role": "admin"}}, {"user": {"role": "guest"}}]
    result = await FilterExecutor().execute(
        {"field": "user.role", "value": "admin"}, {"input": items}
    )
    assert result == [{"user": {"role": "admin"}}]


@pytest.mark.asyncio
async def test_filter_unknown_operator_matches_nothing():
    result = await FilterExecutor().execute(
        {"field": "a", "operator": "between", "value": 1}, {"input": [{"a": 1}]}
    )
    assert result == []


@pytest.mark.asyncio
async def test_filter_wraps_single_item_and_uses_only_port():
    result = await FilterExecutor().execute(
        {"field": "a", "value": 1}, {"upstream": {"a": 1}}
    )
    assert result == [{"a": 1}]


@pytest.mark.asyncio
async def test_filter_without_input_returns_empty_list():
    assert await FilterExecutor().execute({"field": "a"}, {}) == []


@pytest.mark.asyncio
async def test_filter_rejects_non_string_field():
    with pytest.raises(ConfigError):
        await FilterExecutor().execute({"field": 3}, {"input": []})


# Transform ----------------------------------------------------------------


@pytest.mark.asyncio
async def test_transform_mapping():
    items = [{"first": "A", "last": "B", "id": 7}]
    mapping = {"full": "{{first}} {{last}}", "id": "{{ id }}", "const": 5}
    result = await TransformExecutor().execute({"mapping": mapping}, {"input": items})
    assert result == [{"full": "A B", "id": 7, "const": 5}]


@pytest.mark.asyncio
async def test_transform_nested_mapping_and_missing_path():
    items = [{"user": {"name": "ada", "tags": ["x"]}}]
    mapping = {
        "profile": {"name": "{{user.name}}", "email": "{{user.email}}"},
        "labels": ["{{user.tags}}", "static"],
    }
    result = await TransformExecutor().execute({"mapping": mapping}, {"input": items})
    assert result == [
        {"profile": {"name": "ada", "email": None}, "labels": [["x"], "static"]}
    ]


@pytest.mark.asyncio
async def test_transform_leaves_unresolved_embedded_placeholders():
    items = [{"name": "ada"}]
    mapping = {"line": "{{name}} from {{city}}"}
    result = await TransformExecutor().execute({"mapping": mapping}, {"input": items})
    assert result == [{"line": "ada from {{city}}"}]


@pytest.mark.asyncio
async def test_transform_requires_mapping():
    with pytest.raises(ConfigError):
        await TransformExecutor().execute({}, {"input": []})


# HTTP request ---------------------------------------------------------------


def _executor(handler):
    return HttpRequestExecutor(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_http_get_renders_url_placeholders():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": 42, "name": "ada"})

    result = await _executor(handler).execute(
        {"url": "https://api.example.com/users/{{user_id}}"}, {"user_id": 42}
    )

    assert result == {"status_code": 200, "data": {"id": 42, "name": "ada"}}
    assert seen[0].method == "GET"
    assert str(seen[0].url) == "https://api.example.com/users/42"
    assert seen[0].content == b""


@pytest.mark.asyncio
async def test_http_post_sends_json_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"created": True})

    result = await _executor(handler).execute(
        {
            "url": "https://api.example.com/items",
            "method": "post",
            "headers": {"X-Token": "abc", "X-Ignored": 5},
            "json_data": {"name": "widget"},
        },
        {},
    )

    request = seen[0]
    assert result["status_code"] == 201
    assert request.method == "POST"
    assert json.loads(request.content) == {"name": "widget"}
    assert request.headers["content-type"] == "application/json"
    assert request.headers["x-token"] == "abc"
    assert "x-ignored" not in request.headers


@pytest.mark.asyncio
async def test_http_user_content_type_wins_regardless_of_case():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="ok")

    await _executor(handler).execute(
        {
            "url": "https://api.example.com/items",
            "method": "POST",
            "headers": {"content-type": "text/plain"},
            "json_data": "hello",
        },
        {},
    )

    assert seen[0].headers.get_list("content-type") == ["text/plain"]


@pytest.mark.asyncio
async def test_http_non_json_response_is_wrapped_as_text():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream exploded")

    result = await _executor(handler).execute({"url": "https://example.com"}, {})
    assert result == {"status_code": 500, "data": {"text": "upstream exploded"}}


@pytest.mark.asyncio
async def test_http_transport_failure_raises_execution_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExecutionError, match="request failed"):
        await _executor(handler).execute({"url": "https://example.com"}, {})


@pytest.mark.asyncio
async def test_http_requires_url():
    with pytest.raises(ConfigError):
        await HttpRequestExecutor().execute({"method": "GET"}, {})
