from __future__ import annotations

from core.result import (
    Err,
    Ok,
    attempt,
    chain,
    combine,
    err,
    fold,
    from_optional,
    is_err,
    is_ok,
    map_err,
    map_ok,
    ok,
    unwrap_or,
)


def test_discriminant_matches_variant() -> None:
    assert ok(1).ok is True
    assert err("boom").ok is False
    assert is_ok(ok(1)) and not is_err(ok(1))
    assert is_err(err("boom")) and not is_ok(err("boom"))


def test_map_ok_and_map_err_touch_only_their_branch() -> None:
    assert map_ok(ok(2), lambda v: v * 10) == Ok(20)
    assert map_ok(err("e"), lambda v: v * 10) == Err("e")
    assert map_err(err("e"), str.upper) == Err("E")
    assert map_err(ok(2), str.upper) == Ok(2)


def test_chain_short_circuits_on_error() -> None:
    calls = []

    def step(value: int):
        calls.append(value)
        return ok(value + 1)

    assert chain(ok(1), step) == Ok(2)
    assert chain(err("stop"), step) == Err("stop")
    assert calls == [1]


def test_unwrap_or_and_fold() -> None:
    assert unwrap_or(ok("x"), "default") == "x"
    assert unwrap_or(err("e"), "default") == "default"
    assert fold(ok(3), lambda v: f"ok:{v}", lambda e: f"err:{e}") == "ok:3"
    assert fold(err("bad"), lambda v: f"ok:{v}", lambda e: f"err:{e}") == "err:bad"


def test_from_optional_keeps_falsy_values() -> None:
    assert from_optional(0, "missing") == Ok(0)
    assert from_optional("", "missing") == Ok("")
    assert from_optional(None, "missing") == Err("missing")


def test_attempt_converts_exceptions() -> None:
    assert attempt(lambda: 5, str) == Ok(5)
    result = attempt(lambda: int("nope"), lambda exc: type(exc).__name__)
    assert result == Err("ValueError")


def test_combine_returns_first_error() -> None:
    assert combine([ok(1), ok(2)]) == Ok((1, 2))
    assert combine([ok(1), err("first"), err("second")]) == Err("first")
    assert combine([]) == Ok(())
