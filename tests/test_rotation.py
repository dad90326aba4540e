"""Tests for CredentialRotator: sticky round-robin failover."""

import pytest

from src.errors import AllCredentialsExhausted, ProviderError, StoreError
from src.llm.rotation import CredentialRotator


class _Recorder:
    """Unit of work that fails for selected keys and records every call."""

    def __init__(self, failing: set[str]) -> None:
        self.failing = failing
        self.calls: list[str] = []

    async def __call__(self, credential: str) -> str:
        self.calls.append(credential)
        if credential in self.failing:
            raise ProviderError(f"{credential} rejected")
        return f"ok:{credential}"


def _rotator(credentials, pointer=0):
    persisted: list[int] = []

    async def persist(value: int) -> None:
        persisted.append(value)

    return CredentialRotator(credentials, pointer, persist_pointer=persist), persisted


async def test_success_leaves_pointer_unchanged() -> None:
    rotator, persisted = _rotator(["k1", "k2", "k3"], pointer=1)
    work = _Recorder(failing=set())

    result = await rotator.attempt(work)

    assert result == "ok:k2"
    assert work.calls == ["k2"]
    assert rotator.pointer == 1
    assert persisted == []


async def test_failover_parks_on_working_key() -> None:
    rotator, persisted = _rotator(["k1", "k2", "k3"], pointer=0)
    work = _Recorder(failing={"k1", "k2"})

    result = await rotator.attempt(work)

    assert result == "ok:k3"
    assert work.calls == ["k1", "k2", "k3"]
    assert persisted == [1, 2]
    assert rotator.pointer == 2
    assert rotator.current == "k3"


@pytest.mark.parametrize("initial", [0, 1, 2])
@pytest.mark.parametrize("offset", [0, 1, 2])
async def test_success_at_offset(initial: int, offset: int) -> None:
    keys = ["k1", "k2", "k3"]
    failing = {keys[(initial + i) % 3] for i in range(offset)}
    rotator, _ = _rotator(keys, pointer=initial)
    work = _Recorder(failing=failing)

    await rotator.attempt(work)

    assert len(work.calls) == offset + 1
    assert rotator.pointer == (initial + offset) % 3


@pytest.mark.parametrize("initial", [0, 2])
async def test_all_failing_wraps_once(initial: int) -> None:
    rotator, persisted = _rotator(["k1", "k2", "k3"], pointer=initial)
    work = _Recorder(failing={"k1", "k2", "k3"})

    with pytest.raises(AllCredentialsExhausted) as exc_info:
        await rotator.attempt(work)

    assert len(work.calls) == 3
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.__cause__, ProviderError)
    assert rotator.pointer == initial % 3
    assert len(persisted) == 3


async def test_next_call_skips_failed_key() -> None:
    rotator, _ = _rotator(["k1", "k2"])
    work = _Recorder(failing={"k1"})

    await rotator.attempt(work)
    work.failing = set()
    await rotator.attempt(work)

    assert work.calls == ["k1", "k2", "k2"]


async def test_no_credentials_makes_no_attempts() -> None:
    rotator, persisted = _rotator([])
    work = _Recorder(failing=set())

    with pytest.raises(AllCredentialsExhausted):
        await rotator.attempt(work)

    assert work.calls == []
    assert persisted == []


def test_out_of_range_pointer_is_normalised() -> None:
    rotator, _ = _rotator(["k1", "k2"], pointer=5)
    assert rotator.pointer == 1


async def test_any_exception_counts_as_failed_attempt() -> None:
    rotator, _ = _rotator(["k1", "k2"])
    calls: list[str] = []

    async def work(credential: str) -> str:
        calls.append(credential)
        if credential == "k1":
            raise RuntimeError("request construction failed")
        return "done"

    assert await rotator.attempt(work) == "done"
    assert calls == ["k1", "k2"]


async def test_pointer_unchanged_when_persisting_fails() -> None:
    async def persist(value: int) -> None:
        raise StoreError("database is locked")

    rotator = CredentialRotator(["k1", "k2"], 0, persist_pointer=persist)

    with pytest.raises(StoreError):
        await rotator.attempt(_Recorder(failing={"k1"}))

    assert rotator.pointer == 0
