from __future__ import annotations


def log(area: str, message: str) -> None:
    """Console line in the ``[repbook] <area>: <message>`` format."""
    print(f"[repbook] {area}: {message}")


def log_failure(context: str, exc: BaseException) -> None:
    log(context, f"error {type(exc).__name__}: {exc}")
