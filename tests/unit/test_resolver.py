import pytest

from querycoalesce.errors import QueryError, ResolverError
from querycoalesce.resolver import invoke_resolver

def test_resolver_output_is_serialized():
    key = invoke_resolver(lambda a, b: {"b": b, "a": a}, (1, 2), {})
    assert key == "{a:1,b:2}"

def test_resolver_receives_kwargs():
    key = invoke_resolver(lambda sym, *, fresh: [sym, fresh], ("NVDA",), {"fresh": False})
    assert key == "[False],[NVDA]"

def test_resolver_exception_wrapped_with_cause():
    boom = RuntimeError("Resolver error")

    def bad(*_):
        raise boom

    with pytest.raises(ResolverError) as ei:
        invoke_resolver(bad, (1,), {})
    assert str(ei.value) == "Resolver function failed"
    assert ei.value.cause is boom
    assert ei.value.__cause__ is boom
    assert isinstance(ei.value, QueryError)
