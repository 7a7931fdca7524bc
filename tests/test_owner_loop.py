"""Tests for the owner execution loop."""

from __future__ import annotations

import threading

import pytest

from prune.reconcile import OwnerLoop


def test_jobs_run_in_order_on_one_thread() -> None:
    loop = OwnerLoop()
    loop.start()
    try:
        seen: list[tuple[int, str]] = []
        futures = [
            loop.submit(lambda n=n: seen.append((n, threading.current_thread().name)))
            for n in range(5)
        ]
        for future in futures:
            future.result(timeout=5)
    finally:
        loop.stop()

    assert [n for n, _ in seen] == list(range(5))
    assert {name for _, name in seen} == {"prune-owner"}


def test_call_runs_inline_on_owner_thread() -> None:
    loop = OwnerLoop()
    loop.start()
    try:
        nested = loop.call(lambda: loop.call(lambda: loop.is_owner_thread()), timeout=5)
    finally:
        loop.stop()

    assert nested is True


def test_exceptions_propagate_to_caller() -> None:
    loop = OwnerLoop()
    loop.start()
    try:
        with pytest.raises(ZeroDivisionError):
            loop.call(lambda: 1 / 0, timeout=5)
        assert loop.call(lambda: "still running", timeout=5) == "still running"
    finally:
        loop.stop()


def test_submit_after_stop_fails_fast() -> None:
    loop = OwnerLoop()
    loop.start()
    loop.stop()

    future = loop.submit(lambda: None)

    assert isinstance(future.exception(timeout=1), RuntimeError)
    assert not loop.running
