from __future__ import annotations

from diffsettings.services.failure_reporter import ErrorPromptLatch, FailureReporter


def test_disabled_by_default() -> None:
    calls: list[tuple[str, str]] = []
    reporter = FailureReporter(lambda message, details: calls.append((message, details)) or True)

    assert not reporter.enabled
    assert reporter.report("boom", "trace") is False
    assert calls == []


def test_yes_keeps_prompting() -> None:
    calls: list[str] = []

    def prompt(message: str, details: str) -> bool:
        calls.append(message)
        return True

    reporter = FailureReporter(prompt, enabled=True)
    assert reporter.report("first") is True
    assert reporter.report("second") is True
    assert calls == ["first", "second"]
    assert reporter.enabled


def test_no_latches_reporter_off() -> None:
    calls: list[str] = []

    def prompt(message: str, details: str) -> bool:
        calls.append(message)
        return False

    reporter = FailureReporter(prompt, enabled=True)
    assert reporter.report("first") is False
    assert reporter.report("second") is False
    assert calls == ["first"]
    assert not reporter.enabled


def test_prompt_exception_counts_as_no() -> None:
    def prompt(message: str, details: str) -> bool:
        raise RuntimeError("no display")

    reporter = FailureReporter(prompt, enabled=True)
    assert reporter.report("boom") is False
    assert not reporter.enabled


def test_enabled_without_prompt_is_inert() -> None:
    reporter = FailureReporter(enabled=True)
    assert not reporter.enabled
    assert reporter.report("boom", "trace") is False


def test_prompt_receives_redacted_text() -> None:
    seen: list[tuple[str, str]] = []

    def prompt(message: str, details: str) -> bool:
        seen.append((message, details))
        return True

    reporter = FailureReporter(prompt, enabled=True)
    reporter.report("Login failed: Password=Hunter2", "Server=db;Pwd=secret;Database=x")

    message, details = seen[0]
    assert "Hunter2" not in message
    assert "secret" not in details
    assert "Server=db" in details


def test_latch_is_one_way() -> None:
    latch = ErrorPromptLatch()
    assert not latch.tripped
    latch.trip()
    latch.trip()
    assert latch.tripped
