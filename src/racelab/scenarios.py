"""Built-in scenarios.

Each factory builds fresh shared state and the operations that touch it.
Racy scenarios expect the detector to flag them; the others exercise
synchronisation the detector must understand and expect a clean run.
"""

from __future__ import annotations

import ctypes
import threading
from types import SimpleNamespace

from racelab.harness import LOOPS, Discipline
from racelab.outcome import expect_clean, expect_flagged
from racelab.reports import access_pattern
from racelab.scenario import Scenario, register

# Each thread allocates LOOPS arrays; together they add up to several times
# a 40 MiB heap, so freed memory gets reused while the threads are running.
_HEAP_BYTES = 40 * 1024 * 1024
_CHURN_ARRAY_BYTES = _HEAP_BYTES * 4 // 2 // LOOPS


@register("racy_counter")
def racy_counter() -> Scenario:
    state = SimpleNamespace(x=0)

    def increment(i: int) -> None:
        state.x = state.x + 1

    return Scenario(
        name="racy_counter",
        primary=increment,
        expected=expect_flagged(),
        epilogue=lambda: f"x = {state.x}",
        description="Unsynchronised read-modify-write of a shared attribute.",
    )


@register("locked_counter")
def locked_counter() -> Scenario:
    state = SimpleNamespace(x=0)
    lock = threading.Lock()

    def increment(i: int) -> None:
        with lock:
            state.x = state.x + 1

    return Scenario(
        name="locked_counter",
        primary=increment,
        expected=expect_clean(),
        epilogue=lambda: f"x = {state.x}",
        description="The racy counter with the increment under a lock.",
    )


@register("published_fields")
def published_fields() -> Scenario:
    state = SimpleNamespace(flag=0, text="", data1=0, data2=0, stale=0)

    def setup(i: int) -> None:
        state.flag = 1
        state.text = "a"

    def publish(i: int) -> None:
        state.data1 = 42
        state.flag = 2
        state.data2 = 43
        state.text = "b"

    def observe(i: int) -> None:
        while state.flag != 2:
            pass
        if state.data1 != 42:
            state.stale += 1
        while state.text != "b":
            pass
        if state.data2 != 43:
            state.stale += 1

    return Scenario(
        name="published_fields",
        primary=publish,
        secondary=observe,
        setup=setup,
        discipline=Discipline.ALTERNATING_PAIRED,
        expected=expect_clean(),
        epilogue=lambda: f"stale reads = {state.stale}",
        description="Plain data published ahead of a flag the reader spins on.",
    )


@register("racy_ctypes_int")
def racy_ctypes_int() -> Scenario:
    cell = (ctypes.c_int32 * 1)()

    def increment(i: int) -> None:
        cell[0] = cell[0] + 1

    return Scenario(
        name="racy_ctypes_int",
        primary=increment,
        expected=expect_flagged(matches=(access_pattern(4),)),
        epilogue=lambda: f"cell = {cell[0]}",
        description="Unsynchronised 4-byte stores into raw memory.",
    )


@register("locked_ctypes_int")
def locked_ctypes_int() -> Scenario:
    cell = (ctypes.c_int32 * 1)()
    lock = threading.Lock()

    def increment(i: int) -> None:
        with lock:
            cell[0] = cell[0] + 1

    def read_then_store(i: int) -> None:
        with lock:
            value = cell[0]
        with lock:
            # Lost updates are fine here; only the accesses must be ordered.
            cell[0] = value + 1

    return Scenario(
        name="locked_ctypes_int",
        primary=increment,
        secondary=read_then_store,
        expected=expect_clean(),
        epilogue=lambda: f"cell = {cell[0]}",
        description="Raw-memory accesses, each one under a lock.",
    )


@register("allocation_churn")
def allocation_churn() -> Scenario:
    holder = SimpleNamespace(array=None)

    def allocate(i: int) -> None:
        arr = bytearray(_CHURN_ARRAY_BYTES)
        for j in range(0, _CHURN_ARRAY_BYTES, 64):
            arr[j] = 42
        holder.array = arr

    return Scenario(
        name="allocation_churn",
        primary=allocate,
        expected=expect_clean(),
        epilogue=lambda: f"array[0] = {holder.array[0] if holder.array else None}",
        description="Thread-private allocations freed and reused under GC.",
    )


@register("string_operations")
def string_operations() -> Scenario:
    greeting = "hi"

    def concat_and_hash(i: int) -> None:
        text = "" + str(i)
        hash(text)
        hash(greeting)

    return Scenario(
        name="string_operations",
        primary=concat_and_hash,
        expected=expect_clean(),
        description="String building and hashing, which the runtime keeps race-free.",
    )


@register("racy_int_array")
def racy_int_array() -> Scenario:
    cells = (ctypes.c_int32 * 2)()

    def increment(i: int) -> None:
        cells[0] = cells[0] + 1

    return Scenario(
        name="racy_int_array",
        primary=increment,
        expected=expect_flagged(matches=(access_pattern(4),)),
        epilogue=lambda: f"x = {cells[0]}",
        description="Unsynchronised stores into the first element of a 4-byte array.",
    )


@register("locked_byte_array")
def locked_byte_array() -> Scenario:
    cells = (ctypes.c_uint8 * 2)()
    lock = threading.Lock()

    def increment(i: int) -> None:
        with lock:
            cells[0] = (cells[0] + 1) & 0xFF

    return Scenario(
        name="locked_byte_array",
        primary=increment,
        expected=expect_clean(),
        epilogue=lambda: f"x = {cells[0]}",
        description="Byte-array element updates, each one under a lock.",
    )


class _CasCell:
    """A value with an atomic compare-and-set."""

    def __init__(self, value: object) -> None:
        self._value = value
        self._lock = threading.Lock()

    def compare_and_set(self, expected: object, new: object) -> bool:
        with self._lock:
            if self._value != expected:
                return False
            self._value = new
            return True


@register("cas_guarded_fields")
def cas_guarded_fields() -> Scenario:
    state = SimpleNamespace(x=0, y=0, z=0)
    int_guard = _CasCell(0)
    wide_guard = _CasCell(0)
    object_guard = _CasCell(None)

    def update(i: int) -> None:
        while not int_guard.compare_and_set(0, 1):
            pass
        state.x = state.x + 1
        int_guard.compare_and_set(1, 0)

        while not wide_guard.compare_and_set(0, 1 << 40):
            pass
        state.y = state.y + 1
        wide_guard.compare_and_set(1 << 40, 0)

        token = object()
        while not object_guard.compare_and_set(None, token):
            pass
        state.z = state.z + 1
        object_guard.compare_and_set(token, None)

    return Scenario(
        name="cas_guarded_fields",
        primary=update,
        expected=expect_clean(),
        epilogue=lambda: f"x = {state.x}, y = {state.y}, z = {state.z}",
        description="Plain fields guarded by spin locks built on compare-and-set.",
    )
