"""Common-argument hoisting.

Arguments that many functions describe identically are moved to the package
record's ``common_arguments``; the functions keep the argument name with no
description of their own.
"""

from __future__ import annotations

from collections import Counter

from pkgctx.config import PkgctxConfig
from pkgctx.ir.doctext import normalize_whitespace
from pkgctx.ir.models import PackageIR


def hoist_common_arguments(ir: PackageIR, config: PkgctxConfig | None = None) -> PackageIR:
    """Hoist shared argument descriptions into the package record, in place.

    An argument name is hoisted when its most common description (after
    whitespace normalization) is used by at least ``hoist_min_functions``
    functions and by at least ``hoist_threshold`` of the functions declaring
    that name. Names already present in ``common_arguments`` are left alone,
    so hoisting twice is the same as hoisting once.
    """
    config = config or PkgctxConfig()
    common = dict(ir.package.common_arguments)

    declaring: Counter[str] = Counter()
    descriptions: dict[str, Counter[str]] = {}
    first_seen: dict[tuple[str, str], int] = {}
    position = 0
    for function in ir.functions:
        for name, text in function.arguments.items():
            if name in common:
                continue
            declaring[name] += 1
            if text is None:
                continue
            normalized = normalize_whitespace(text)
            if not normalized:
                continue
            descriptions.setdefault(name, Counter())[normalized] += 1
            first_seen.setdefault((name, normalized), position)
            position += 1

    hoisted: dict[str, str] = {}
    for name, counter in descriptions.items():
        # Most frequent description; ties go to the one seen first.
        text, count = min(counter.items(), key=lambda item: (-item[1], first_seen[(name, item[0])]))
        if count >= config.hoist_min_functions and count / declaring[name] >= config.hoist_threshold:
            hoisted[name] = text

    if not hoisted:
        return ir

    for function in ir.functions:
        for name, text in function.arguments.items():
            if name in hoisted and text is not None and normalize_whitespace(text) == hoisted[name]:
                function.arguments[name] = None

    common.update(hoisted)
    ir.package.common_arguments = {name: common[name] for name in sorted(common)}
    return ir
