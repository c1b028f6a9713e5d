from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from typing import Any, Literal

from pydantic import BaseModel, TypeAdapter

from asmm.models import PnL, Quote

RenderStyle = Literal["compact", "pretty"]

# 只读属性不在字段里，渲染时补上。
_DERIVED: dict[type, tuple[str, ...]] = {
    Quote: ("spread", "mid"),
    PnL: ("total",),
}


def _attach_derived(value: Any, payload: dict[str, Any]) -> dict[str, Any]:
    for name in _DERIVED.get(type(value), ()):
        payload[name] = getattr(value, name)
    for f in fields(value):
        child = getattr(value, f.name)
        if is_dataclass(child) and isinstance(payload.get(f.name), dict):
            _attach_derived(child, payload[f.name])
    return payload


def to_payload(value: Any) -> dict[str, Any]:
    """把公开数据模型转成可 JSON 序列化的 dict。"""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        payload = TypeAdapter(type(value)).dump_python(value, mode="json")
        return _attach_derived(value, payload)
    raise TypeError(f"不支持渲染的类型: {type(value).__name__}")


def render(value: Any, style: RenderStyle = "compact") -> str:
    payload = to_payload(value)
    if style == "pretty":
        return json.dumps(payload, indent=2, ensure_ascii=False)
    if style == "compact":
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    raise ValueError(f"未知渲染格式: {style}")
