from __future__ import annotations

import logging

import pytest

from agencydesk.screens.toasts import GENERIC_ERROR, Toast, ToastCenter


def test_toasts_are_bounded_to_the_newest() -> None:
    toasts = ToastCenter(limit=2)
    for index in range(3):
        toasts.success("Success", f"saved {index}")

    assert [toast.description for toast in toasts.pending] == ["saved 1", "saved 2"]


def test_zero_limit_keeps_nothing() -> None:
    toasts = ToastCenter(limit=0)
    toast = toasts.error()

    assert toast.description == GENERIC_ERROR
    assert toasts.pending == []


def test_drain_empties_the_queue() -> None:
    toasts = ToastCenter()
    toasts.success("Success", "Customer created successfully")

    drained = toasts.drain()

    assert [toast.description for toast in drained] == ["Customer created successfully"]
    assert toasts.pending == []


def test_listeners_receive_every_toast_and_failures_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    received: list[Toast] = []

    def broken(toast: Toast) -> None:
        raise RuntimeError("listener down")

    toasts = ToastCenter()
    toasts.subscribe(broken)
    toasts.subscribe(received.append)

    with caplog.at_level(logging.WARNING, logger="agencydesk.toasts"):
        toasts.error("Access Denied", "Only super admin can configure API integrations")

    assert [toast.title for toast in received] == ["Access Denied"]
    assert received[0].variant == "destructive"
    failures = [record for record in caplog.records if record.getMessage() == "toast.listener_failed"]
    assert failures
    assert failures[0].error == "listener down"
