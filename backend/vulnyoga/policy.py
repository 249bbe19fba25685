# Overview: Process-wide authorization policy; one strict/permissive switch per category.

"""
Policy Configuration

WHY: Every gate in the request pipeline can run in a strict or a permissive
posture so each control can be removed independently for demonstration.
The switches are resolved once at startup into an immutable PolicyConfig and
passed explicitly into every gate and lifecycle call.

RAW FLAGS:
The environment speaks in "vulnerable" switches (VULN_API1_BOLA=true means
the object-level control is OFF). A missing flag defaults to vulnerable.
SAFE_MODE=true inverts every raw flag, so default flags plus safe mode give
a fully strict system.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Mapping


FLAG_AUTHN = "VULN_API2_BROKEN_AUTH"
FLAG_OBJECT_LEVEL = "VULN_API1_BOLA"
FLAG_PROPERTY_LEVEL = "VULN_API3_BOPLA"
FLAG_RESOURCE_LIMITS = "VULN_API4_RESOURCE"
FLAG_FUNCTION_LEVEL = "VULN_API5_FUNC_AUTH"
FLAG_BUSINESS_FLOW = "VULN_API6_BUSINESS_FLOW"
FLAG_SSRF = "VULN_API7_SSRF"
FLAG_MISCONFIG = "VULN_API8_MISCONFIG"
FLAG_INVENTORY = "VULN_API9_INVENTORY"

SAFE_MODE_FLAG = "SAFE_MODE"

# raw flag -> PolicyConfig attribute
FLAG_FIELDS = {
    FLAG_AUTHN: "authn_strict",
    FLAG_OBJECT_LEVEL: "object_level_strict",
    FLAG_PROPERTY_LEVEL: "property_level_strict",
    FLAG_FUNCTION_LEVEL: "function_level_strict",
    FLAG_BUSINESS_FLOW: "business_flow_strict",
    FLAG_RESOURCE_LIMITS: "resource_limits_strict",
    FLAG_SSRF: "ssrf_strict",
    FLAG_MISCONFIG: "misconfig_strict",
    FLAG_INVENTORY: "inventory_strict",
}


@dataclass(frozen=True)
class PolicyConfig:
    """
    Immutable snapshot of the effective policy.

    Each *_strict attribute is True when the corresponding control is enforced.
    safe_mode_inverted records whether SAFE_MODE was applied during resolution.
    """
    authn_strict: bool = False
    object_level_strict: bool = False
    property_level_strict: bool = False
    function_level_strict: bool = False
    business_flow_strict: bool = False
    resource_limits_strict: bool = False
    ssrf_strict: bool = False
    misconfig_strict: bool = False
    inventory_strict: bool = False
    safe_mode_inverted: bool = False

    @classmethod
    def all_strict(cls) -> "PolicyConfig":
        return cls(**{name: True for name in FLAG_FIELDS.values()})

    @classmethod
    def all_permissive(cls) -> "PolicyConfig":
        return cls()


def resolve(raw_flags: Mapping[str, bool], safe_mode: bool) -> PolicyConfig:
    """
    Resolve raw vulnerability flags into a PolicyConfig.

    Missing flags default to vulnerable (True). When safe_mode is set every
    raw flag is inverted before strictness is derived.
    """
    values = {}
    for flag, attr in FLAG_FIELDS.items():
        vulnerable = bool(raw_flags.get(flag, True))
        if safe_mode:
            vulnerable = not vulnerable
        values[attr] = not vulnerable
    return PolicyConfig(safe_mode_inverted=bool(safe_mode), **values)


def _parse_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    return value.strip().lower() == "true"


def from_env(environ: Mapping[str, str]) -> PolicyConfig:
    """Build a PolicyConfig from environment-style string values."""
    raw_flags = {}
    for flag in FLAG_FIELDS:
        parsed = _parse_bool(environ.get(flag))
        if parsed is not None:
            raw_flags[flag] = parsed
    safe_mode = _parse_bool(environ.get(SAFE_MODE_FLAG)) or False
    return resolve(raw_flags, safe_mode)


def policy_status(policy: PolicyConfig) -> list[tuple[str, str]]:
    """List (category, STRICT|PERMISSIVE) pairs in declaration order."""
    status = []
    for f in fields(policy):
        if f.name == "safe_mode_inverted":
            continue
        category = f.name.removesuffix("_strict")
        status.append((category, "STRICT" if getattr(policy, f.name) else "PERMISSIVE"))
    return status
