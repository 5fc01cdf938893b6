from __future__ import annotations

from collections.abc import Iterable


def _clean(value: object) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()


def build_recipient_list(
    primary: str | None,
    others: Iterable[str | None] | None,
    actor_id: str | None,
) -> list[str]:
    """Deduplicated, sorted user ids drawn from the assignment fields, never including the actor."""
    recipients: set[str] = set()
    for value in [primary, *(others or [])]:
        cleaned = _clean(value)
        if cleaned:
            recipients.add(cleaned)
    recipients.discard(_clean(actor_id))
    return sorted(recipients)


def same_recipient_sets(left: Iterable[str], right: Iterable[str]) -> bool:
    return set(left) == set(right)
