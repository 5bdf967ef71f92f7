from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional, Union

from sla_tracker.backend import BackendClient
from sla_tracker.cache import InMemoryTTLCache, make_cache_key
from sla_tracker.countdown import coerce_planned_minutes
from sla_tracker.formatting import normalize_step_key


@dataclass(frozen=True)
class SlaStepConfig:
    stepName: str
    plannedMinutes: Union[int, float]
    enabled: bool
    updatedAt: str = ""
    updatedBy: str = ""

    @property
    def effective_planned_minutes(self) -> Union[int, float]:
        # A disabled step is never timed, whatever its planned duration.
        if not self.enabled:
            return 0
        return max(0, self.plannedMinutes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        s = value.strip().lower()
        if s in {"1", "true", "yes", "y", "on"}:
            return True
        if s in {"0", "false", "no", "n", "off", ""}:
            return False
        return default
    return bool(value)


def normalize_step_config(item: Any) -> Optional[SlaStepConfig]:
    if not isinstance(item, dict):
        return None
    step = normalize_step_key(item.get("stepName"))
    if not step:
        return None
    planned = coerce_planned_minutes(item.get("plannedMinutes"))
    return SlaStepConfig(
        stepName=step,
        plannedMinutes=max(0, planned),
        enabled=_as_bool(item.get("enabled"), True),
        updatedAt=str(item.get("updatedAt") or ""),
        updatedBy=str(item.get("updatedBy") or ""),
    )


def parse_sla_config(payload: Any) -> list[SlaStepConfig]:
    raw = payload.get("items") if isinstance(payload, dict) else payload
    if not isinstance(raw, list):
        return []
    items = [c for c in (normalize_step_config(x) for x in raw) if c is not None]
    items.sort(key=lambda c: c.stepName)
    return items


def load_sla_config(
    client: BackendClient, token: str, *, cache: Optional[InMemoryTTLCache] = None
) -> list[SlaStepConfig]:
    key = make_cache_key("SLA_CONFIG_GET", scope=[token])
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    items = parse_sla_config(client.call("SLA_CONFIG_GET", {}, token=token))
    if cache is not None:
        cache.set(key, items)
    return items
